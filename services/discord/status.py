"""
Discord Presence Module

Responsibilities:
- Apply the rotating "watching ..." presence to the bot
- Clear presence when nobody is live
- Keep the last requested text for diagnostics

IMPORTANT:
- This module does NOT own the Discord client
- Presence is memory-only; it is rebuilt from live polls after a restart
"""

from __future__ import annotations

from typing import Callable, Optional

import discord

from shared.errors import TransportError
from shared.logging.logger import get_logger

log = get_logger("discord.status", runtime="discord")


class DiscordPresence:
    def __init__(self, bot_provider: Callable[[], Optional[discord.Client]]):
        self._bot_provider = bot_provider
        self._text: Optional[str] = None

    # --------------------------------------------------

    async def set(self, text: Optional[str]) -> None:
        """
        Set (or clear, when text is None) the bot presence.
        """
        bot = self._bot_provider()
        if bot is None:
            raise TransportError("Discord client not connected")

        activity = discord.CustomActivity(name=text) if text else None

        try:
            await bot.change_presence(activity=activity)
        except discord.DiscordException as e:
            raise TransportError(f"presence update failed: {e}") from e

        if text != self._text:
            log.info(f"Discord presence updated: text={text!r}")
        self._text = text

    # --------------------------------------------------

    def snapshot(self) -> dict:
        return {"text": self._text}
