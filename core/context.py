from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from shared.config.tenants import TenantConfig


@dataclass
class LiveEntry:
    # Opaque transport handle (a discord.Message in production)
    handle: Any
    category: str


@dataclass(frozen=True)
class RosterEntry:
    broadcaster_id: str
    category: str


@dataclass
class TenantContext:
    # -------------------------------------------------
    # IDENTITY (immutable after startup)
    # -------------------------------------------------
    server_id: str
    channel_id: str
    broadcasters: Tuple[str, ...]

    # -------------------------------------------------
    # LIVE STATE (owned by the reconciler)
    # -------------------------------------------------
    # broadcaster_id -> LiveEntry, present iff believed live with an
    # outstanding notification
    live_state: Dict[str, LiveEntry] = field(default_factory=dict)

    # Rebuilt every reconciliation cycle, in watched order
    roster: List[RosterEntry] = field(default_factory=list)

    # -------------------------------------------------
    # PRESENCE ROTATION (owned by the rotator)
    # -------------------------------------------------
    cursor: int = 0

    # -------------------------------------------------

    @classmethod
    def from_config(cls, cfg: TenantConfig) -> "TenantContext":
        return cls(
            server_id=cfg.server_id,
            channel_id=cfg.channel_id,
            broadcasters=tuple(cfg.broadcasters),
        )

    @property
    def key(self) -> str:
        return f"{self.server_id}_{self.channel_id}"

    def snapshot(self) -> Dict[str, Any]:
        """
        Return a JSON-friendly view for diagnostics.
        """
        return {
            "key": self.key,
            "server_id": self.server_id,
            "channel_id": self.channel_id,
            "broadcasters": list(self.broadcasters),
            "live": {
                broadcaster_id: entry.category
                for broadcaster_id, entry in self.live_state.items()
            },
            "roster": [
                {"broadcaster_id": r.broadcaster_id, "category": r.category}
                for r in self.roster
            ],
            "cursor": self.cursor,
        }
