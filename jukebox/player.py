"""
Playback engine: per-guild queues on top of discord.py voice clients and yt-dlp.

The engine owns the voice sessions and queues. Commands only read
``GuildQueue.songs`` and call ``skip()`` / ``stop()``; everything else goes
through ``PlaybackEngine``. Lifecycle events are delivered to listeners
registered with ``PlaybackEngine.on`` as independent tasks:

- ``play_song(queue, song)``: a song started playing
- ``add_song(queue, song)``: a song was queued behind another one
- ``finish(queue)``: the last song ended and the queue was dropped
"""
import asyncio
import concurrent.futures
import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import discord
import yt_dlp

from jukebox.audio_processor import HTTP_UA, create_audio_source, pick_best_audio_url, sanitize_stream_url
from jukebox.exceptions import PlayerError
from jukebox.metrics import metric_add_time, metric_inc
from jukebox.track import Song
from jukebox.utils import truncate
from jukebox.voice_manager import disconnect, ensure_connected, get_voice_client

logger = logging.getLogger("Jukebox.Player")

EVENTS = ("play_song", "add_song", "finish")

YTDL_OPTS: Dict[str, Any] = {
    "format": "bestaudio/best",
    "quiet": True,
    "no_warnings": True,
    "nocheckcertificate": True,
    "ignoreerrors": False,
    "default_search": "ytsearch",
    # Avoid playlist extraction for single-track lookups
    "noplaylist": True,
    "socket_timeout": 15,
    "http_headers": {"User-Agent": HTTP_UA},
}

Listener = Callable[..., Awaitable[None]]


class GuildQueue:
    """Ordered songs for one guild; ``songs[0]`` is the one playing."""

    def __init__(self, engine: 'PlaybackEngine', guild, voice: discord.VoiceClient, text_channel=None) -> None:
        self.engine = engine
        self.guild = guild
        self.voice = voice
        self.text_channel = text_channel
        self.songs: List[Song] = []
        self.stopped = False
        # skip() already dropped the song the pending after-callback belongs to
        self._skip_pending = False
        self._loop = asyncio.get_running_loop()

    @property
    def id(self) -> int:
        return self.guild.id

    def _play_current(self) -> None:
        song = self.songs[0]
        source = self.engine.create_source(song.stream_url)
        self.voice.play(source, after=self._after)
        metric_inc("playback_start")
        logger.info("Start playback guild=%s title=%s dur=%s", self.id, truncate(song.name, 80), song.formatted_duration)
        self.engine.emit("play_song", self, song)

    def _after(self, err: Optional[Exception]) -> None:
        # Runs on discord.py's audio thread.
        if err:
            logger.error("Playback error guild=%s: %s", self.id, err)
            metric_inc("playback_error")
        else:
            metric_inc("playback_finish")
        self._loop.call_soon_threadsafe(self._advance)

    def _advance(self) -> None:
        if self.stopped:
            return
        if self._skip_pending:
            self._skip_pending = False
        elif self.songs:
            self.songs.pop(0)
        while self.songs:
            try:
                self._play_current()
                return
            except (discord.ClientException, OSError, PlayerError) as e:
                logger.error("Could not start %s in guild=%s: %s", truncate(self.songs[0].name, 80), self.id, e)
                metric_inc("playback_error")
                self.songs.pop(0)
        self.engine._finish(self)

    def skip(self) -> Song:
        """Drop the current song and stop it; the next one starts from the after-callback.

        The song is removed here rather than in the callback so a second skip
        issued before the callback runs sees the shortened queue.
        """
        if len(self.songs) <= 1:
            raise PlayerError("There is no next song to skip to")
        self.songs.pop(0)
        self._skip_pending = True
        upcoming = self.songs[0]
        self.voice.stop()
        logger.info("Skip guild=%s next=%s", self.id, truncate(upcoming.name, 80))
        return upcoming

    async def stop(self) -> None:
        """Clear the queue, stop audio and leave the voice channel."""
        self._halt()
        self.engine._remove(self)
        if self.voice.is_connected():
            await self.voice.disconnect()
        logger.info("Stopped and disconnected guild=%s", self.id)

    def _halt(self) -> None:
        self.stopped = True
        self.songs.clear()
        if self.voice.is_playing() or self.voice.is_paused():
            self.voice.stop()


class PlaybackEngine:
    """Joins voice channels, resolves queries with yt-dlp and plays them in order."""

    def __init__(
        self,
        client: discord.Client,
        ytdl: Optional[yt_dlp.YoutubeDL] = None,
        resolve_timeout: float = 20.0,
        stream_profile: str = "stable",
        ffmpeg_bitrate: str = "128k",
        executor: Optional[concurrent.futures.Executor] = None,
    ) -> None:
        self.client = client
        self._ytdl = ytdl or yt_dlp.YoutubeDL(YTDL_OPTS)
        self.resolve_timeout = resolve_timeout
        self.stream_profile = stream_profile
        self.ffmpeg_bitrate = ffmpeg_bitrate
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="jukebox-ytdl"
        )
        self._queues: Dict[int, GuildQueue] = {}
        self._listeners: Dict[str, List[Listener]] = {}
        self._tasks: Set[asyncio.Task] = set()

    # --- events ---
    def on(self, event: str, callback: Listener) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {EVENTS}")
        self._listeners.setdefault(event, []).append(callback)

    def emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            task = asyncio.ensure_future(self._run_listener(event, callback, args))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_listener(self, event: str, callback: Listener, args) -> None:
        try:
            await callback(*args)
        except Exception:
            logger.exception("Listener for %s failed", event)

    # --- voice ---
    def get_voice(self, guild) -> Optional[discord.VoiceClient]:
        return get_voice_client(self.client, guild)

    async def join(self, channel) -> discord.VoiceClient:
        vc = await ensure_connected(self.client, channel)
        queue = self._queues.get(channel.guild.id)
        if queue is not None:
            queue.voice = vc
        return vc

    async def leave(self, guild) -> bool:
        queue = self._queues.pop(guild.id, None)
        if queue is not None:
            queue._halt()
        return await disconnect(self.client, guild)

    # --- queues ---
    def get_queue(self, guild_id: int) -> Optional[GuildQueue]:
        return self._queues.get(guild_id)

    def _remove(self, queue: GuildQueue) -> None:
        if self._queues.get(queue.id) is queue:
            self._queues.pop(queue.id, None)

    def _finish(self, queue: GuildQueue) -> None:
        self._remove(queue)
        logger.info("Queue finished guild=%s", queue.id)
        self.emit("finish", queue)

    def create_source(self, stream_url: Optional[str]) -> discord.AudioSource:
        if not stream_url:
            raise PlayerError("Song has no stream URL")
        return create_audio_source(stream_url, self.stream_profile, self.ffmpeg_bitrate)

    async def play(
        self,
        channel,
        query: str,
        member=None,
        text_channel=None,
        lock: Optional[asyncio.Lock] = None,
    ) -> Song:
        """Resolve ``query`` and queue it in ``channel``'s guild.

        Raises PlayerError when nothing playable is found or playback cannot
        start. Starting a song emits ``play_song``; queueing behind the current
        song emits ``add_song``. When ``lock`` is given it is held while the
        voice connection and queue change, not during extraction.
        """
        data = await self.extract(query)
        song = Song(data, requested_by=getattr(member, "display_name", None))
        if lock is None:
            return await self._enqueue(channel, song, text_channel)
        async with lock:
            return await self._enqueue(channel, song, text_channel)

    async def _enqueue(self, channel, song: Song, text_channel=None) -> Song:
        vc = await self.join(channel)
        guild_id = channel.guild.id
        queue = self._queues.get(guild_id)
        if queue is None:
            queue = GuildQueue(self, channel.guild, vc, text_channel)
            self._queues[guild_id] = queue
        queue.songs.append(song)
        metric_inc("queue_add")
        if len(queue.songs) == 1:
            try:
                queue._play_current()
            except (discord.ClientException, OSError, PlayerError) as e:
                queue.songs.remove(song)
                if not queue.songs:
                    self._remove(queue)
                raise PlayerError(f"Could not start playback: {e}") from e
        else:
            logger.info("Queued guild=%s pos=%s title=%s", guild_id, len(queue.songs), truncate(song.name, 80))
            self.emit("add_song", queue, song)
        return song

    async def extract(self, query: str) -> Dict[str, Any]:
        """Run yt-dlp on ``query`` in the executor and return one info dict."""
        q = (query or "").strip()
        if not q:
            raise PlayerError("Empty query")
        loop = asyncio.get_running_loop()
        t0 = time.perf_counter()
        logger.debug("Resolve start query=%s timeout=%s", truncate(q, 200), self.resolve_timeout)
        try:
            fut = loop.run_in_executor(self._executor, functools.partial(self._ytdl.extract_info, q, download=False))
            data = await asyncio.wait_for(fut, timeout=self.resolve_timeout)
        except asyncio.TimeoutError as e:
            raise PlayerError(f"Timed out resolving {truncate(q, 80)!r}") from e
        except yt_dlp.utils.YoutubeDLError as e:
            raise PlayerError(f"yt-dlp could not resolve {truncate(q, 80)!r}: {e}") from e
        finally:
            metric_add_time("resolve_time", time.perf_counter() - t0)
        if not data:
            raise PlayerError("No result")
        if "entries" in data:
            entries = [e for e in data.get("entries") or [] if e]
            if not entries:
                raise PlayerError("No entries in result")
            data = entries[0]
        if not data.get("url"):
            picked = pick_best_audio_url(data)
            if picked:
                data["url"] = picked
        else:
            data["url"] = sanitize_stream_url(data["url"]) or data["url"]
        if not data.get("url"):
            raise PlayerError("No stream URL in result")
        return data

    async def close(self) -> None:
        for guild_id in list(self._queues):
            queue = self._queues.pop(guild_id)
            queue._halt()
        for vc in list(self.client.voice_clients):
            try:
                await vc.disconnect(force=True)
            except (discord.ClientException, discord.HTTPException, OSError):
                logger.debug("Voice disconnect during close failed", exc_info=True)
        self._executor.shutdown(wait=False, cancel_futures=True)
