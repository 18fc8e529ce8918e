"""Command handlers for Jukebox Bot.

Each handler takes ``(runtime, message, args)`` where ``runtime`` is the
CommandDispatcher holding the engine, search cache and resolver.
"""
import logging
from typing import Optional

import discord

logger = logging.getLogger("Jukebox.Commands")

__all__ = [
    "playback",
    "queue",
    "reply",
    "caller_voice_channel",
]


def caller_voice_channel(message) -> Optional[discord.abc.Connectable]:
    """The voice channel the message author is in, if any."""
    state = getattr(message.author, "voice", None)
    return getattr(state, "channel", None) if state else None


async def reply(message, content: str) -> Optional[discord.Message]:
    try:
        return await message.reply(content)
    except discord.HTTPException as e:
        logger.debug("Reply failed channel=%s status=%s", getattr(message.channel, "id", "?"), getattr(e, "status", None))
        return None
