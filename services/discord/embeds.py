from __future__ import annotations

import discord

from core.payloads import LivePayload


def live_embed(payload: LivePayload) -> discord.Embed:
    embed = discord.Embed(
        title=payload.title,
        url=payload.url,
        description=payload.description,
        color=discord.Color.red(),
    )

    if payload.thumbnail_url:
        embed.set_thumbnail(url=payload.thumbnail_url)
    embed.set_image(url=payload.image_url)
    embed.set_footer(text=payload.footer)

    return embed
