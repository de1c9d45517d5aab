from typing import Any, Dict, Optional

import httpx

from services.twitch.api.auth import TwitchAppTokenProvider, TwitchTokenError
from services.twitch.models.stream import LiveSnapshot
from shared.errors import ProbeError
from shared.logging.logger import get_logger

log = get_logger("twitch.streams", runtime="liverelay")


class TwitchStatusProber:
    """
    Twitch live status lookup (Helix API).

    Responsibilities:
    - Detect whether a login is currently live
    - Resolve the broadcaster avatar when live
    - Return normalized LiveSnapshot metadata

    Stateless apart from the shared token provider. Every failure (HTTP,
    auth, malformed payload) is raised as ProbeError; callers decide how
    to treat it.
    """

    STREAMS_URL = "https://api.twitch.tv/helix/streams"
    USERS_URL = "https://api.twitch.tv/helix/users"

    def __init__(
        self,
        *,
        tokens: TwitchAppTokenProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tokens = tokens
        self._transport = transport

    # ------------------------------------------------------------

    async def probe(self, broadcaster_id: str) -> Optional[LiveSnapshot]:
        """
        Return a LiveSnapshot when `broadcaster_id` is live, None when offline.
        """
        try:
            token = await self.tokens.get_token()
        except TwitchTokenError as e:
            raise ProbeError(broadcaster_id, str(e)) from e

        headers = {
            "Client-ID": self.tokens.client_id,
            "Authorization": f"Bearer {token}",
        }

        async with httpx.AsyncClient(
            timeout=15.0,
            headers=headers,
            transport=self._transport,
        ) as client:
            streams = await self._get_data(
                client, self.STREAMS_URL, {"user_login": broadcaster_id}, broadcaster_id
            )
            if not streams:
                return None

            stream = streams[0]
            if not isinstance(stream, dict):
                raise ProbeError(broadcaster_id, "malformed stream entry")

            users = await self._get_data(
                client, self.USERS_URL, {"login": broadcaster_id}, broadcaster_id
            )

        avatar_url = None
        if users:
            if not isinstance(users[0], dict):
                raise ProbeError(broadcaster_id, "malformed user entry")
            avatar_url = users[0].get("profile_image_url")

        return self._to_snapshot(broadcaster_id, stream, avatar_url)

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _get_data(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Dict[str, str],
        broadcaster_id: str,
    ) -> list:
        try:
            r = await client.get(url, params=params)
            r.raise_for_status()
            payload = r.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                self.tokens.invalidate()
            raise ProbeError(
                broadcaster_id,
                f"{e.response.status_code} {e.response.reason_phrase}",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProbeError(broadcaster_id, f"request failed: {e}") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise ProbeError(broadcaster_id, "response missing data array")

        return data

    @staticmethod
    def _to_snapshot(
        broadcaster_id: str,
        stream: Dict[str, Any],
        avatar_url: Optional[str],
    ) -> LiveSnapshot:
        try:
            viewer_count = int(stream.get("viewer_count") or 0)
        except (TypeError, ValueError):
            viewer_count = 0

        return LiveSnapshot(
            broadcaster_id=broadcaster_id,
            title=stream.get("title") or "",
            category=stream.get("game_name") or "",
            viewer_count=viewer_count,
            thumbnail_template_url=stream.get("thumbnail_url") or "",
            avatar_url=avatar_url,
            raw=stream,
        )
