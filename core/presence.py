from typing import Optional

from core.context import RosterEntry, TenantContext
from core.registry import TenantRegistry
from shared.errors import TransportError
from shared.logging.logger import get_logger

log = get_logger("core.presence")


def format_presence(entry: RosterEntry) -> str:
    return f"watching {entry.broadcaster_id} play {entry.category}"


class PresenceRotator:
    """
    Rotates the process-wide bot presence through the tenants' live rosters.

    The cursor is per tenant (TenantContext.cursor), survives roster rebuilds
    and is only wrapped modulo the current roster length.

    `presence` must expose `async set(text: Optional[str])`.
    """

    def __init__(self, registry: TenantRegistry, presence):
        self.registry = registry
        self.presence = presence

    # ------------------------------------------------------------

    async def tick(self, tenant: TenantContext) -> Optional[str]:
        """
        Advance `tenant`'s rotation by one step.

        Returns the presence text that was requested, or None when presence
        was cleared or left untouched.
        """
        if tenant.roster:
            index = tenant.cursor % len(tenant.roster)
            text = format_presence(tenant.roster[index])
            tenant.cursor = (index + 1) % len(tenant.roster)

            await self._set(text)
            return text

        # Another tenant may still be driving the presence
        if self.registry.any_live():
            log.debug(f"[{tenant.key}] Roster empty; presence owned by another tenant")
            return None

        await self._set(None)
        return None

    async def _set(self, text: Optional[str]) -> None:
        try:
            await self.presence.set(text)
        except TransportError as e:
            log.warning(f"Failed to update presence ({text!r}): {e}")
