"""
Voice connection management.
At most one voice client exists per guild; joining another channel moves it.
"""

import asyncio
import logging
from typing import Optional

import discord

from jukebox.exceptions import VoiceConnectionError

logger = logging.getLogger("Jukebox.VoiceManager")


def get_voice_client(client: discord.Client, guild) -> Optional[discord.VoiceClient]:
    """Return the connected voice client for ``guild``, if any."""
    if guild is None:
        return None
    vc = discord.utils.get(client.voice_clients, guild=guild)
    if vc and vc.is_connected():
        return vc
    return None


async def ensure_connected(client: discord.Client, channel) -> discord.VoiceClient:
    """Connect to ``channel``, reusing or moving the guild's existing connection."""
    vc = get_voice_client(client, channel.guild)
    try:
        if vc is not None:
            if vc.channel.id != channel.id:
                await vc.move_to(channel)
                logger.info("Moved to voice channel: %s (guild: %s)", channel.name, channel.guild.id)
            return vc
        vc = await channel.connect()
    except (discord.ClientException, discord.HTTPException, asyncio.TimeoutError, OSError) as e:
        raise VoiceConnectionError(f"could not connect to {getattr(channel, 'name', channel)}: {e}") from e
    logger.info("Connected to voice channel: %s (guild: %s)", channel.name, channel.guild.id)
    return vc


async def disconnect(client: discord.Client, guild) -> bool:
    """Disconnect from ``guild``'s voice channel. Returns False if not connected."""
    vc = get_voice_client(client, guild)
    if vc is None:
        return False
    await vc.disconnect()
    logger.info("Disconnected from voice (guild: %s)", guild.id)
    return True
