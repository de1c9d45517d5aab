import asyncio
from typing import Awaitable, Callable, List, Optional

from core.reconciler import LiveStateReconciler
from core.registry import TenantRegistry
from shared.config.system import TimingConfig
from shared.logging.logger import get_logger

log = get_logger("core.scheduler")


class Scheduler:
    """
    Cooperative driver for the periodic cycles.

    Tasks:
    - reconcile loop : reconcile_all every poll interval
    - refresh loop   : refresh_all every refresh interval
    - restart loop   : one-shot countdown, then `on_restart`

    Each loop awaits its cycle before sleeping, so a cycle is never issued
    while the previous one of the same kind is still running.
    """

    def __init__(
        self,
        *,
        registry: TenantRegistry,
        reconciler: LiveStateReconciler,
        timing: Optional[TimingConfig] = None,
        on_restart: Optional[Callable[[], Awaitable[None]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.reconciler = reconciler
        self.timing = timing or TimingConfig()
        self._on_restart = on_restart
        self._sleep = sleep

        self._tasks: List[asyncio.Task] = []
        self._running = False

    # ------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def task_count(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------

    def start(self) -> None:
        if self._running:
            log.warning("Scheduler already running — ignoring duplicate start")
            return

        log.info(
            "Scheduler starting "
            f"(poll={self.timing.poll_interval_seconds:g}s, "
            f"refresh={self.timing.refresh_interval_seconds:g}s, "
            f"restart={self.timing.restart_after_seconds:g}s)"
        )

        self._tasks.append(asyncio.create_task(self._reconcile_loop()))
        self._tasks.append(asyncio.create_task(self._refresh_loop()))

        if self.timing.restart_after_seconds > 0:
            self._tasks.append(asyncio.create_task(self._restart_countdown()))
        else:
            log.info("Scheduled restart disabled")

        self._running = True

    # ------------------------------------------------------------

    async def run_reconcile_once(self) -> None:
        faults = await self.reconciler.reconcile_all(self.registry)
        if faults:
            log.warning(f"Reconciliation pass finished with {len(faults)} tenant fault(s)")

    async def run_refresh_once(self) -> None:
        faults = await self.reconciler.refresh_all(self.registry)
        if faults:
            log.warning(f"Refresh pass finished with {len(faults)} tenant fault(s)")

    # ------------------------------------------------------------

    async def _reconcile_loop(self):
        try:
            # First pass runs immediately to rebuild state after a cold start
            while True:
                await self.run_reconcile_once()
                await self._sleep(self.timing.poll_interval_seconds)
        except asyncio.CancelledError:
            log.debug("Reconcile loop cancelled")
            raise

    async def _refresh_loop(self):
        try:
            while True:
                await self._sleep(self.timing.refresh_interval_seconds)
                await self.run_refresh_once()
        except asyncio.CancelledError:
            log.debug("Refresh loop cancelled")
            raise

    async def _restart_countdown(self):
        remaining = self.timing.restart_after_seconds
        step = self.timing.restart_log_interval_seconds

        try:
            while remaining > 0:
                await self._sleep(min(step, remaining))
                remaining -= step

                left = max(remaining, 0)
                hours = int(left // 3600)
                minutes = int((left % 3600) // 60)
                log.info(f"Restart in: {hours} hours and {minutes} minutes...")

            log.info("Restarting now...")
            if self._on_restart is not None:
                await self._on_restart()
        except asyncio.CancelledError:
            log.debug("Restart countdown cancelled")
            raise

    # ------------------------------------------------------------

    async def shutdown(self):
        if not self._running and not self._tasks:
            return

        log.info("Scheduler shutdown initiated")

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]

        for task in tasks:
            if not task.done():
                task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        self._running = False
        log.info("Scheduler shutdown complete")
