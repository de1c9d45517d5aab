import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class LiveSnapshot:
    """
    Normalized Twitch live stream metadata for one broadcaster.

    `thumbnail_template_url` is the raw Helix value and still contains the
    `{width}` / `{height}` placeholders.
    """

    broadcaster_id: str
    title: str
    category: str
    viewer_count: int
    thumbnail_template_url: str
    avatar_url: Optional[str] = None

    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def channel_url(self) -> str:
        return f"https://twitch.tv/{self.broadcaster_id}"

    def thumbnail_url(
        self,
        width: int,
        height: int,
        *,
        now_ms: Optional[int] = None,
    ) -> str:
        """
        Render the preview URL at a fixed size with a cache-busting timestamp,
        so Discord fetches a fresh frame even when Twitch caches by URL.
        """
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        url = (
            self.thumbnail_template_url
            .replace("{width}", str(width))
            .replace("{height}", str(height))
        )
        return f"{url}?time={now_ms}"
