import logging
from typing import Any, List

from jukebox.commands import caller_voice_channel, reply
from jukebox.exceptions import PlayerError
from jukebox.messages import msg
from jukebox.metrics import metric_inc
from jukebox.resolver import is_spotify_link
from jukebox.utils import truncate

logger = logging.getLogger("Jukebox.Commands.Playback")


# Handlers are registered by CommandDispatcher; they never raise for expected failures.

async def handle_join(runtime: Any, message, args: List[str]) -> None:
    channel = caller_voice_channel(message)
    if channel is None:
        await reply(message, msg("NOT_IN_VOICE"))
        return
    try:
        await runtime.engine.join(channel)
    except PlayerError as e:
        logger.warning("Join failed guild=%s channel=%s: %s", message.guild.id, getattr(channel, "id", "?"), e)
        await reply(message, msg("JOIN_FAILED"))
        return
    await reply(message, msg("JOINED"))


async def handle_play(runtime: Any, message, args: List[str]) -> None:
    """Play a query: Spotify rewrite, then cache, then engine, then CLI fallback."""
    channel = caller_voice_channel(message)
    if channel is None:
        await reply(message, msg("NOT_IN_VOICE"))
        return
    query = " ".join(args).strip()
    if not query:
        await reply(message, msg("MISSING_QUERY"))
        return

    engine, cache, resolver = runtime.engine, runtime.cache, runtime.resolver
    play_kwargs = {
        "member": message.author,
        "text_channel": message.channel,
        "lock": runtime.guild_lock(message.guild.id),
    }

    if is_spotify_link(query):
        title = await resolver.spotify_title(query)
        if not title:
            await reply(message, msg("SPOTIFY_FAILED"))
            return
        query = title

    cached = await cache.lookup(query)
    try:
        if cached is not None:
            await engine.play(channel, cached.url, **play_kwargs)
            await reply(message, msg("PLAYING_CACHED", title=cached.title))
            return
        await engine.play(channel, query, **play_kwargs)
        return
    except PlayerError as e:
        metric_inc("primary_play_failures")
        logger.warning("Engine could not play query=%s (cached=%s): %s; trying fallback search",
                       truncate(query, 120), cached is not None, e)

    outcome = await resolver.search(query)
    if not outcome.ok:
        await reply(message, msg("SONG_NOT_FOUND"))
        return
    await cache.store(query, outcome.track)
    try:
        await engine.play(channel, outcome.track.url, **play_kwargs)
    except PlayerError as e:
        logger.error("Fallback track failed to play url=%s: %s", outcome.track.url, e)
        await reply(message, msg("PLAY_FAILED"))


async def handle_skip(runtime: Any, message, args: List[str]) -> None:
    queue = runtime.engine.get_queue(message.guild.id)
    if queue is None or len(queue.songs) <= 1:
        await reply(message, msg("NO_MORE_SONGS"))
        return
    queue.skip()
    await reply(message, msg("SKIPPED"))


async def handle_stop(runtime: Any, message, args: List[str]) -> None:
    queue = runtime.engine.get_queue(message.guild.id)
    if queue is None:
        await reply(message, msg("NOTHING_PLAYING"))
        return
    await queue.stop()
    await reply(message, msg("STOPPED"))


async def handle_leave(runtime: Any, message, args: List[str]) -> None:
    if runtime.engine.get_voice(message.guild) is None:
        await reply(message, msg("NOT_CONNECTED"))
        return
    await runtime.engine.leave(message.guild)
    await reply(message, msg("LEFT"))
