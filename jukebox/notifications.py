"""
Posts playback lifecycle updates to the text channel a queue was started from.
"""
import logging
from typing import Optional

import discord

from jukebox.messages import msg
from jukebox.player import GuildQueue, PlaybackEngine
from jukebox.track import Song

logger = logging.getLogger("Jukebox.Notifications")


class NotificationEmitter:
    """Fire-and-forget status messages for ``play_song`` and ``add_song``."""

    def __init__(self, engine: PlaybackEngine) -> None:
        self.engine = engine
        engine.on("play_song", self.on_play_song)
        engine.on("add_song", self.on_add_song)

    async def on_play_song(self, queue: GuildQueue, song: Song) -> None:
        await self._send(queue, msg("NOW_PLAYING", title=song.name, duration=song.formatted_duration))

    async def on_add_song(self, queue: GuildQueue, song: Song) -> None:
        await self._send(queue, msg("SONG_ADDED", title=song.name))

    async def _send(self, queue: GuildQueue, content: str) -> Optional[discord.Message]:
        channel = queue.text_channel
        if channel is None:
            logger.debug("No text channel bound to queue guild=%s; dropping notice", queue.id)
            return None
        try:
            return await channel.send(content)
        except discord.HTTPException as e:
            logger.debug("Notification send failed guild=%s status=%s", queue.id, getattr(e, "status", None))
            return None
