#!/usr/bin/env python3

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from typing import Any, Dict, Optional

import discord

from jukebox import __version__
from jukebox.cache_manager import SearchCache, cleanup_cache_loop
from jukebox.config import load_env_file, load_config, get_token
from jukebox.dispatcher import CommandDispatcher
from jukebox.exceptions import ConfigurationError
from jukebox.logging_setup import setup_logging
from jukebox.messages import set_language
from jukebox.metrics import get_average_resolve_time, metrics_snapshot
from jukebox.notifications import NotificationEmitter
from jukebox.player import PlaybackEngine
from jukebox.resolver import TrackResolver

logger = logging.getLogger("Jukebox")


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.message_content = True
    intents.voice_states = True
    return intents


class JukeboxClient(discord.Client):
    """discord.Client wired to the dispatcher, engine, cache and notifier."""

    def __init__(self, config: Dict[str, Any]) -> None:
        super().__init__(intents=build_intents())
        self.config = config
        self.cache = SearchCache(config["cache_size_limit"], config["cache_ttl_seconds"])
        self.resolver = TrackResolver(
            search_binary=config["search_binary"],
            search_timeout=config["search_timeout_seconds"],
            metadata_timeout=config["metadata_timeout_seconds"],
        )
        self.engine = PlaybackEngine(
            self,
            resolve_timeout=config["resolve_timeout_seconds"],
            stream_profile=config["stream_profile"],
            ffmpeg_bitrate=config["ffmpeg_bitrate"],
        )
        self.notifier = NotificationEmitter(self.engine)
        self.dispatcher = CommandDispatcher(self.engine, self.cache, self.resolver, prefix=config["prefix"])
        self._cache_cleanup_task: Optional[asyncio.Task] = None

    async def setup_hook(self) -> None:
        if self.cache.ttl_seconds:
            self._cache_cleanup_task = asyncio.create_task(cleanup_cache_loop(self.cache))

    async def on_ready(self) -> None:
        logger.info("Bot ready: %s (ID: %s) version=%s", self.user, self.user.id, __version__)
        for tool in ("ffmpeg", self.resolver.search_binary):
            path = shutil.which(tool)
            if path:
                logger.info("%s found at: %s", tool, path)
            else:
                logger.error("%s not found in PATH; playback or fallback search will fail", tool)

    async def on_message(self, message: discord.Message) -> None:
        await self.dispatcher.handle_message(message)

    async def close(self) -> None:
        if self._cache_cleanup_task and not self._cache_cleanup_task.done():
            self._cache_cleanup_task.cancel()
        await self.engine.close()
        logger.info(
            "Shutting down; metrics=%s avg_resolve=%.2fs cache=%s",
            metrics_snapshot(), get_average_resolve_time(), self.cache.get_stats(),
        )
        await super().close()


def main() -> int:
    load_env_file()
    config = load_config()
    setup_logging(config)
    set_language(config["language"])
    try:
        token = get_token()
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1
    # Only report presence; never log the token or the environment.
    logger.info("Token loaded: yes")
    client = JukeboxClient(config)
    try:
        client.run(token)
    except discord.LoginFailure:
        logger.error("Login failed: the TOKEN was rejected")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
