"""
Discord Client

This module owns the Discord connection itself.
It is intentionally minimal and lifecycle-focused.

Responsibilities:
- connect to Discord
- handle ready / resume / disconnect events
- expose a clean async run() / shutdown() contract

IMPORTANT:
- This client MUST be controlled by DiscordSupervisor
- This client MUST NOT create its own event loop
- This client MUST NOT start polling cycles
"""

from __future__ import annotations

import asyncio
from typing import Optional

import discord

from shared.logging.logger import get_logger

# NOTE: routed to Discord runtime log file
log = get_logger("discord.client", runtime="discord")


class DiscordClient:
    """
    Thin wrapper around discord.Client.

    This class provides:
    - async run() entrypoint
    - async shutdown()
    - a ready event the supervisor can await
    """

    def __init__(self, token: str):
        if not token:
            raise RuntimeError("Discord bot token is required")

        self._token: str = token
        self._client: Optional[discord.Client] = None
        self.ready_event = asyncio.Event()

    # --------------------------------------------------

    def _build_client(self) -> discord.Client:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.guild_messages = True
        intents.message_content = False

        client = discord.Client(intents=intents)

        # --------------------------------------------------
        # Lifecycle Events
        # --------------------------------------------------

        @client.event
        async def on_ready():
            log.info(
                f"Discord connected as {client.user} "
                f"(id={client.user.id}) "
                f"guilds={len(client.guilds)}"
            )
            self.ready_event.set()

        @client.event
        async def on_resumed():
            log.info("Discord connection resumed")

        @client.event
        async def on_disconnect():
            log.warning("Discord connection lost")

        return client

    # --------------------------------------------------

    async def run(self):
        """
        Start the Discord client and block until shutdown.
        """
        if self._client is not None:
            raise RuntimeError("Discord client already running")

        log.info("Initializing Discord client")

        self._client = self._build_client()

        try:
            await self._client.start(self._token)
        except asyncio.CancelledError:
            log.info("Discord client task cancelled")
            raise
        except Exception as e:
            log.error(f"Discord client crashed: {e}")
            raise
        finally:
            log.info("Discord client stopped")

    # --------------------------------------------------

    async def shutdown(self):
        """
        Gracefully close the Discord connection.
        """
        if not self._client:
            return

        log.info("Closing Discord connection")

        try:
            await self._client.close()
        except Exception as e:
            log.warning(f"Discord close error ignored: {e}")

        self._client = None
        self.ready_event.clear()

    # --------------------------------------------------

    @property
    def bot(self) -> Optional[discord.Client]:
        """
        Expose the client instance (read-only) for transports.
        """
        if self._client is None or not self.ready_event.is_set():
            return None
        return self._client
