"""
Discord Runtime Supervisor

Owns the lifecycle of the Discord runtime.

Responsibilities:
- start Discord client
- run the post-ready bootstrap exactly once
- report a failed bootstrap to the host
- perform graceful shutdown

IMPORTANT:
- MUST be started by core.app
- MUST NOT create its own event loop
- MUST NOT install signal handlers
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional

from shared.logging.logger import get_logger
from services.discord.client import DiscordClient

# NOTE: routed to Discord runtime log file
log = get_logger("discord.supervisor", runtime="discord")


class DiscordSupervisor:
    """
    Owns the Discord runtime lifecycle.

    Contract:
    - start() is awaitable and returns once tasks are scheduled
    - on_ready runs once, after the first successful connection
    - on_bootstrap_error is called if on_ready raises
    - shutdown() is idempotent
    """

    def __init__(
        self,
        client: DiscordClient,
        *,
        on_ready: Optional[Callable[[], Awaitable[None]]] = None,
        on_bootstrap_error: Optional[Callable[[BaseException], None]] = None,
    ):
        self._client = client
        self._on_ready = on_ready
        self._on_bootstrap_error = on_bootstrap_error
        self._tasks: List[asyncio.Task] = []
        self._running: bool = False

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    async def start(self):
        if self._running:
            log.warning("Discord supervisor already running")
            return

        log.info("Starting Discord supervisor")

        # --------------------------------------------------
        # Discord client main loop
        # --------------------------------------------------
        client_task = asyncio.create_task(self._client.run())
        self._tasks.append(client_task)

        # --------------------------------------------------
        # Post-ready bootstrap (once)
        # --------------------------------------------------
        self._tasks.append(asyncio.create_task(self._post_ready_init()))

        self._running = True
        log.info("Discord supervisor started")

    async def _post_ready_init(self):
        try:
            await self._client.ready_event.wait()
            if self._on_ready is not None:
                await self._on_ready()
            log.info("Discord runtime ready")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"Post-ready Discord bootstrap failed: {e}")
            if self._on_bootstrap_error is None:
                raise
            self._on_bootstrap_error(e)

    # --------------------------------------------------
    # Shutdown
    # --------------------------------------------------

    async def shutdown(self):
        if not self._running:
            return

        log.info("Shutting down Discord supervisor")

        # --------------------------------------------------
        # Stop Discord client first
        # --------------------------------------------------
        try:
            await self._client.shutdown()
        except Exception as e:
            log.warning(f"Discord client shutdown error ignored: {e}")

        # --------------------------------------------------
        # Cancel remaining tasks
        # --------------------------------------------------
        for task in self._tasks:
            if not task.done():
                task.cancel()

        if self._tasks:
            await asyncio.gather(
                *self._tasks,
                return_exceptions=True
            )

        self._tasks.clear()
        self._running = False

        log.info("Discord supervisor shutdown complete")

    @property
    def client_task(self) -> Optional[asyncio.Task]:
        return self._tasks[0] if self._tasks else None
