"""
Routes chat messages to command handlers.

Commands are case-sensitive literal prefixes (``!join``, ``!play`` ...) split
on whitespace. Commands that change playback state for a guild run one at a
time per guild; different guilds never wait on each other. ``!play`` only holds
the guild lock while the engine changes the queue, so a slow lookup does not
hold up ``!skip`` or ``!stop``.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from jukebox.cache_manager import SearchCache
from jukebox.commands import playback as cmd_playback
from jukebox.commands import queue as cmd_queue
from jukebox.commands import reply
from jukebox.messages import msg
from jukebox.metrics import metric_inc
from jukebox.resolver import TrackResolver

logger = logging.getLogger("Jukebox.Dispatcher")

Handler = Callable[[Any, Any, List[str]], Awaitable[None]]


class CommandDispatcher:
    def __init__(self, engine, cache: SearchCache, resolver: TrackResolver, prefix: str = "!") -> None:
        self.engine = engine
        self.cache = cache
        self.resolver = resolver
        self.prefix = prefix
        # name -> (handler, runs under the guild lock); play locks inside the engine
        self._commands: Dict[str, Tuple[Handler, bool]] = {
            prefix + "join": (cmd_playback.handle_join, True),
            prefix + "play": (cmd_playback.handle_play, False),
            prefix + "skip": (cmd_playback.handle_skip, True),
            prefix + "stop": (cmd_playback.handle_stop, True),
            prefix + "queue": (cmd_queue.show_queue, False),
            prefix + "leave": (cmd_playback.handle_leave, True),
        }
        self._guild_locks: Dict[int, asyncio.Lock] = {}

    @staticmethod
    def parse_command(content: str) -> Tuple[str, List[str]]:
        parts = (content or "").split()
        if not parts:
            return "", []
        return parts[0], parts[1:]

    def guild_lock(self, guild_id: int) -> asyncio.Lock:
        lock = self._guild_locks.get(guild_id)
        if lock is None:
            lock = self._guild_locks[guild_id] = asyncio.Lock()
        return lock

    async def handle_message(self, message) -> bool:
        """Run the command in ``message``. Returns False when it was ignored."""
        if message.guild is None or getattr(message.author, "bot", False):
            return False
        name, args = self.parse_command(message.content)
        entry = self._commands.get(name)
        if entry is None:
            return False
        handler, exclusive = entry
        metric_inc("commands_handled")
        logger.debug("Command %s guild=%s author=%s", name, message.guild.id, getattr(message.author, "id", "?"))
        try:
            if exclusive:
                async with self.guild_lock(message.guild.id):
                    await handler(self, message, args)
            else:
                await handler(self, message, args)
        except Exception:
            metric_inc("command_errors")
            logger.exception("Command %s failed guild=%s", name, message.guild.id)
            await reply(message, msg("COMMAND_ERROR"))
        return True
