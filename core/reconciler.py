"""
Live-state reconciler.

Diffs each tenant's believed live set against freshly probed Twitch status
and emits the minimal notification actions:

- post    : broadcaster went live (absent -> live)
- delete  : broadcaster went offline (present -> offline)
- edit    : metadata refresh of an already posted notification

Ownership rules:
- Only reconcile_cycle inserts into or removes from LiveState
- refresh_cycle only edits notifications already committed to LiveState
- A tenant is never processed by both cycles at once (per-tenant lock)
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

from core.context import LiveEntry, RosterEntry, TenantContext
from core.payloads import compose_live_payload
from core.presence import PresenceRotator
from core.registry import TenantRegistry
from shared.config.system import ThumbnailConfig
from shared.errors import ProbeError, TenantFault, TransportError
from shared.logging.logger import get_logger

log = get_logger("core.reconciler")


class LiveStateReconciler:
    """
    Collaborators (duck-typed):
    - prober    : async probe(broadcaster_id) -> LiveSnapshot | None
    - transport : async post(channel_id, payload) -> handle
                  async edit(handle, payload)
                  async delete(handle)
    - rotator   : PresenceRotator
    """

    def __init__(
        self,
        *,
        prober,
        transport,
        rotator: PresenceRotator,
        thumbnail: Optional[ThumbnailConfig] = None,
        clock_ms: Optional[Callable[[], int]] = None,
    ):
        self.prober = prober
        self.transport = transport
        self.rotator = rotator
        self.thumbnail = thumbnail or ThumbnailConfig()
        self._clock_ms = clock_ms

        # tenant key -> lock shared by reconcile + refresh
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------

    def _lock_for(self, tenant: TenantContext) -> asyncio.Lock:
        lock = self._locks.get(tenant.key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant.key] = lock
        return lock

    def _compose(self, snapshot):
        now_ms = self._clock_ms() if self._clock_ms else None
        return compose_live_payload(snapshot, self.thumbnail, now_ms=now_ms)

    async def _probe(self, tenant: TenantContext, broadcaster_id: str):
        """
        Probe one broadcaster. Returns (ok, snapshot); ok is False on ProbeError.
        """
        try:
            return True, await self.prober.probe(broadcaster_id)
        except ProbeError as e:
            log.warning(f"[{tenant.key}] Status probe failed, skipping this cycle: {e}")
            return False, None

    # ------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------

    async def reconcile_cycle(self, tenant: TenantContext) -> None:
        async with self._lock_for(tenant):
            await self._reconcile(tenant)

    async def _reconcile(self, tenant: TenantContext) -> None:
        tenant.roster.clear()
        rotated = False

        for broadcaster_id in tenant.broadcasters:
            ok, snapshot = await self._probe(tenant, broadcaster_id)
            if not ok:
                continue

            entry = tenant.live_state.get(broadcaster_id)

            if snapshot is not None and entry is None:
                if await self._post_live(tenant, broadcaster_id, snapshot):
                    await self.rotator.tick(tenant)
                    rotated = True

            elif snapshot is not None:
                tenant.roster.append(
                    RosterEntry(broadcaster_id=broadcaster_id, category=entry.category)
                )

            elif entry is not None:
                await self._retract_live(tenant, broadcaster_id, entry)

        if not rotated:
            await self.rotator.tick(tenant)

    async def _post_live(self, tenant: TenantContext, broadcaster_id: str, snapshot) -> bool:
        payload = self._compose(snapshot)

        try:
            handle = await self.transport.post(tenant.channel_id, payload)
        except TransportError as e:
            log.error(f"[{tenant.key}] Failed to post live notification for {broadcaster_id}: {e}")
            return False

        tenant.live_state[broadcaster_id] = LiveEntry(
            handle=handle,
            category=snapshot.category,
        )
        tenant.roster.append(
            RosterEntry(broadcaster_id=broadcaster_id, category=snapshot.category)
        )
        log.info(f"[{tenant.key}] {broadcaster_id} went live ({snapshot.category!r})")
        return True

    async def _retract_live(
        self,
        tenant: TenantContext,
        broadcaster_id: str,
        entry: LiveEntry,
    ) -> None:
        try:
            await self.transport.delete(entry.handle)
        except TransportError as e:
            log.warning(
                f"[{tenant.key}] Failed to delete live notification for {broadcaster_id} "
                f"(state cleared anyway): {e}"
            )
        finally:
            tenant.live_state.pop(broadcaster_id, None)

        log.info(f"[{tenant.key}] {broadcaster_id} went offline")

    # ------------------------------------------------------------
    # Metadata refresh
    # ------------------------------------------------------------

    async def refresh_cycle(self, tenant: TenantContext) -> None:
        async with self._lock_for(tenant):
            for broadcaster_id, entry in list(tenant.live_state.items()):
                ok, snapshot = await self._probe(tenant, broadcaster_id)
                if not ok or snapshot is None:
                    # Retraction belongs to the reconciliation cycle
                    continue

                try:
                    await self.transport.edit(entry.handle, self._compose(snapshot))
                except TransportError as e:
                    log.warning(
                        f"[{tenant.key}] Failed to refresh live notification for {broadcaster_id}: {e}"
                    )
                    continue

                entry.category = snapshot.category
                log.debug(f"[{tenant.key}] Refreshed live notification for {broadcaster_id}")

    # ------------------------------------------------------------
    # Registry-wide passes (fault isolated per tenant)
    # ------------------------------------------------------------

    async def reconcile_all(self, registry: TenantRegistry) -> List[TenantFault]:
        faults = await self._for_each(registry, "reconcile", self.reconcile_cycle)
        log.debug(f"Reconciliation pass complete: {registry.snapshot()}")
        return faults

    async def refresh_all(self, registry: TenantRegistry) -> List[TenantFault]:
        return await self._for_each(registry, "refresh", self.refresh_cycle)

    async def _for_each(self, registry: TenantRegistry, operation: str, fn) -> List[TenantFault]:
        faults: List[TenantFault] = []

        for tenant in registry:
            try:
                await fn(tenant)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                fault = TenantFault(tenant.key, operation, e)
                fault.__cause__ = e
                log.error(str(fault))
                faults.append(fault)

        return faults
