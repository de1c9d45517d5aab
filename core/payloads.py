"""
Live notification payloads.

Transport-agnostic description of a "broadcaster is live" notification.
The Discord transport renders it into a message + embed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from services.twitch.models.stream import LiveSnapshot
from shared.config.system import ThumbnailConfig


@dataclass(frozen=True)
class LivePayload:
    broadcaster_id: str
    content: str
    title: str
    url: str
    description: str
    image_url: str
    thumbnail_url: Optional[str] = None
    footer: str = "Click the title to watch the stream"


def compose_live_payload(
    snapshot: LiveSnapshot,
    thumbnail: Optional[ThumbnailConfig] = None,
    *,
    now_ms: Optional[int] = None,
) -> LivePayload:
    thumbnail = thumbnail or ThumbnailConfig()
    login = snapshot.broadcaster_id

    description = (
        f"**Title**: {snapshot.title}\n"
        f"**Game**: {snapshot.category}\n"
        f"**Viewers**: {snapshot.viewer_count}"
    )

    return LivePayload(
        broadcaster_id=login,
        content=f"\U0001F534 @everyone {login} is live!",
        title=f"{login} is live on Twitch!",
        url=snapshot.channel_url,
        description=description,
        image_url=snapshot.thumbnail_url(thumbnail.width, thumbnail.height, now_ms=now_ms),
        thumbnail_url=snapshot.avatar_url,
    )
