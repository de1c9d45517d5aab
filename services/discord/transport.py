"""
Discord Notification Transport

Responsibilities:
- Resolve tenant channels from the connected bot
- Post / edit / delete live notifications
- Purge channel history once at startup

IMPORTANT:
- This module does NOT own the Discord client
- Every discord.py failure is raised as TransportError
"""

from __future__ import annotations

from typing import Callable, Optional

import discord

from core.payloads import LivePayload
from services.discord.embeds import live_embed
from shared.errors import TransportError
from shared.logging.logger import get_logger

log = get_logger("discord.transport", runtime="discord")


HISTORY_BATCH_SIZE = 100


class DiscordNotificationTransport:
    """
    Handles are the discord.Message objects returned by post().
    """

    def __init__(self, bot_provider: Callable[[], Optional[discord.Client]]):
        self._bot_provider = bot_provider

    # --------------------------------------------------

    def _channel(self, channel_id: str) -> discord.abc.Messageable:
        bot = self._bot_provider()
        if bot is None:
            raise TransportError("Discord client not connected")

        try:
            channel = bot.get_channel(int(channel_id))
        except ValueError as e:
            raise TransportError(f"Invalid channel id: {channel_id!r}") from e

        if channel is None:
            raise TransportError(f"Channel not found: {channel_id}")

        return channel

    # --------------------------------------------------

    async def post(self, channel_id: str, payload: LivePayload) -> discord.Message:
        channel = self._channel(channel_id)

        try:
            return await channel.send(
                content=payload.content,
                embed=live_embed(payload),
            )
        except discord.DiscordException as e:
            raise TransportError(f"send to {channel_id} failed: {e}") from e

    async def edit(self, handle: discord.Message, payload: LivePayload) -> None:
        try:
            await handle.edit(embed=live_embed(payload))
        except discord.DiscordException as e:
            raise TransportError(f"edit of message {handle.id} failed: {e}") from e

    async def delete(self, handle: discord.Message) -> None:
        try:
            await handle.delete()
        except discord.DiscordException as e:
            raise TransportError(f"delete of message {handle.id} failed: {e}") from e

    # --------------------------------------------------

    async def clear_history(self, channel_id: str) -> int:
        """
        Delete every message in the channel, in batches, until it is empty.

        Returns the number of deleted messages.
        """
        channel = self._channel(channel_id)
        total = 0

        try:
            while True:
                deleted = await channel.purge(limit=HISTORY_BATCH_SIZE)
                if not deleted:
                    break
                total += len(deleted)
        except discord.DiscordException as e:
            raise TransportError(f"history purge of {channel_id} failed: {e}") from e

        log.info(f"Cleared {total} message(s) from channel {channel_id}")
        return total
