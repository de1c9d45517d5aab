import time
from typing import Callable, Optional

import httpx

from shared.logging.logger import get_logger

log = get_logger("twitch.auth", runtime="liverelay")


class TwitchTokenError(Exception):
    pass


class TwitchAppTokenProvider:
    """
    App access token via the OAuth client-credential grant.

    Responsibilities:
    - obtain a token on first use (or explicitly at startup)
    - renew transparently once the token is close to expiry
    - drop the cached token when the Helix API rejects it (401)

    The provider never retries on its own; a failed fetch raises
    TwitchTokenError and the next caller tries again.
    """

    TOKEN_URL = "https://id.twitch.tv/oauth2/token"

    # Renew this many seconds before the reported expiry
    EXPIRY_MARGIN_SECONDS = 60.0

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not client_id or not client_secret:
            raise RuntimeError("Twitch client id and secret are required")

        self.client_id = client_id
        self._client_secret = client_secret
        self._transport = transport
        self._clock = clock

        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None

    # ------------------------------------------------------------

    @property
    def has_token(self) -> bool:
        return self._token is not None and not self._expired()

    def _expired(self) -> bool:
        if self._expires_at is None:
            return False
        return self._clock() >= self._expires_at - self.EXPIRY_MARGIN_SECONDS

    def invalidate(self) -> None:
        if self._token is not None:
            log.info("Twitch app token invalidated")
        self._token = None
        self._expires_at = None

    # ------------------------------------------------------------

    async def get_token(self) -> str:
        if self._token is not None and not self._expired():
            return self._token

        if self._token is not None:
            log.info("Twitch app token expired — renewing")

        return await self._fetch()

    async def _fetch(self) -> str:
        params = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
        }

        async with httpx.AsyncClient(timeout=15.0, transport=self._transport) as client:
            try:
                r = await client.post(self.TOKEN_URL, params=params)
                r.raise_for_status()
                data = r.json()
            except httpx.HTTPStatusError as e:
                raise TwitchTokenError(
                    f"token request rejected: {e.response.status_code}"
                ) from e
            except (httpx.HTTPError, ValueError) as e:
                raise TwitchTokenError(f"token request failed: {e}") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise TwitchTokenError("token response missing access_token")

        expires_in = data.get("expires_in")
        try:
            self._expires_at = self._clock() + float(expires_in)
        except (TypeError, ValueError):
            self._expires_at = None

        self._token = token
        log.info(
            "Twitch app token acquired "
            f"(expires_in={expires_in if expires_in is not None else 'unknown'})"
        )
        return token
