import asyncio
import pytest
import yt_dlp

from jukebox.cache_manager import SearchCache
from jukebox.dispatcher import CommandDispatcher
from jukebox.exceptions import PlayerError
from jukebox.messages import msg
from jukebox.player import PlaybackEngine
from jukebox.resolver import TrackResolver
from jukebox.track import Song


class DummyGuild:
    def __init__(self, gid=1):
        self.id = gid


class FakeVoiceClient:
    def __init__(self, client, channel):
        self.client = client
        self.guild = channel.guild
        self.channel = channel
        self._connected = True
        self._playing = False
        self._after = None
        self.played = []

    def is_connected(self): return self._connected
    def is_playing(self): return self._playing
    def is_paused(self): return False

    def play(self, source, after=None):
        self._playing = True
        self._after = after
        self.played.append(source)

    def stop(self):
        # discord.py invokes ``after`` once the player thread stops
        if self._playing:
            self._playing = False
            if self._after:
                self._after(None)

    def finish(self, err=None):
        self._playing = False
        self._after(err)

    async def move_to(self, channel):
        self.channel = channel

    async def disconnect(self, force=False):
        self._connected = False
        self.client.voice_clients.remove(self)


class LateCallbackVoiceClient(FakeVoiceClient):
    """Like discord.py, ``after`` arrives a little while after ``stop()``."""

    def stop(self):
        if self._playing:
            self._playing = False
            asyncio.get_running_loop().call_later(0.01, self._after, None)


class FakeVoiceChannel:
    def __init__(self, client, guild, cid=100, voice_cls=FakeVoiceClient):
        self.client = client
        self.voice_cls = voice_cls
        self.guild = guild
        self.id = cid
        self.name = f"voice-{cid}"

    async def connect(self):
        vc = self.voice_cls(self.client, self)
        self.client.voice_clients.append(vc)
        return vc


class FakeClient:
    def __init__(self):
        self.voice_clients = []


class FakeYtdl:
    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.queries = []

    def extract_info(self, query, download=False):
        self.queries.append(query)
        if self.error:
            raise self.error
        if query in self.results:
            return self.results[query]
        return {"title": query, "webpage_url": f"https://youtu.be/{query}", "url": f"https://stream/{query}", "duration": 200}


def make_engine(ytdl=None):
    client = FakeClient()
    engine = PlaybackEngine(client, ytdl=ytdl or FakeYtdl())
    engine.create_source = lambda url: ("source", url)
    events = []

    async def on_play(queue, song):
        events.append(("play_song", song.name))

    async def on_add(queue, song):
        events.append(("add_song", song.name))

    async def on_finish(queue):
        events.append(("finish", queue.id))

    engine.on("play_song", on_play)
    engine.on("add_song", on_add)
    engine.on("finish", on_finish)
    return client, engine, events


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_first_song_starts_and_later_songs_queue():
    client, engine, events = make_engine()
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        await engine.play(channel, "alpha", text_channel="text")
        await engine.play(channel, "beta")
        await settle()
        queue = engine.get_queue(1)
        assert [s.name for s in queue.songs] == ["alpha", "beta"]
        assert queue.text_channel == "text"
        vc = engine.get_voice(channel.guild)
        assert vc.played == [("source", "https://stream/alpha")]
        assert events == [("play_song", "alpha"), ("add_song", "beta")]
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_skip_advances_to_next_song():
    client, engine, events = make_engine()
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        await engine.play(channel, "alpha")
        await engine.play(channel, "beta")
        queue = engine.get_queue(1)
        upcoming = queue.skip()
        assert upcoming.name == "beta"
        await settle()
        assert [s.name for s in queue.songs] == ["beta"]
        assert events[-1] == ("play_song", "beta")
        with pytest.raises(PlayerError):
            queue.skip()
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_queue_is_dropped_when_last_song_finishes():
    client, engine, events = make_engine()
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        await engine.play(channel, "alpha")
        vc = engine.get_voice(channel.guild)
        vc.finish()
        await settle()
        assert engine.get_queue(1) is None
        assert ("finish", 1) in events
        # voice stays connected after a natural finish
        assert engine.get_voice(channel.guild) is vc
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_stop_clears_and_disconnects():
    client, engine, events = make_engine()
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        await engine.play(channel, "alpha")
        await engine.play(channel, "beta")
        queue = engine.get_queue(1)
        await queue.stop()
        await settle()
        assert queue.songs == []
        assert engine.get_queue(1) is None
        assert engine.get_voice(channel.guild) is None
        assert ("play_song", "beta") not in events
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_leave_disconnects_and_drops_queue():
    client, engine, _ = make_engine()
    guild = DummyGuild()
    channel = FakeVoiceChannel(client, guild)
    try:
        assert await engine.leave(guild) is False
        await engine.play(channel, "alpha")
        assert await engine.leave(guild) is True
        assert engine.get_queue(guild.id) is None
        assert client.voice_clients == []
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_join_reuses_or_moves_connection():
    client, engine, _ = make_engine()
    guild = DummyGuild()
    first, second = FakeVoiceChannel(client, guild, 1), FakeVoiceChannel(client, guild, 2)
    try:
        vc = await engine.join(first)
        assert await engine.join(first) is vc
        assert await engine.join(second) is vc
        assert vc.channel is second
        assert len(client.voice_clients) == 1
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_extract_takes_first_search_entry():
    ytdl = FakeYtdl(results={"query": {"entries": [None, {"title": "Hit", "url": "https://s/1?range=0-100&x=1"}]}})
    _, engine, _ = make_engine(ytdl)
    try:
        data = await engine.extract("  query ")
        assert ytdl.queries == ["query"]
        assert data["title"] == "Hit"
        assert data["url"] == "https://s/1?x=1"
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_extract_picks_audio_format_when_url_missing():
    info = {
        "title": "Fmt",
        "formats": [
            {"url": "https://v", "acodec": "none", "vcodec": "avc1"},
            {"url": "https://a1", "acodec": "mp4a.40.2", "abr": 128, "vcodec": "none"},
            {"url": "https://a2", "acodec": "opus", "abr": 160, "vcodec": "none"},
        ],
    }
    _, engine, _ = make_engine(FakeYtdl(results={"fmt": info}))
    try:
        data = await engine.extract("fmt")
        assert data["url"] == "https://a2"
    finally:
        await engine.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("result", [None, {"entries": []}, {"title": "no url"}])
async def test_extract_without_playable_result_raises(result):
    _, engine, _ = make_engine(FakeYtdl(results={"x": result}))
    try:
        with pytest.raises(PlayerError):
            await engine.extract("x")
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_ytdl_errors_become_player_errors():
    client, engine, events = make_engine(FakeYtdl(error=yt_dlp.utils.DownloadError("ERROR: unavailable")))
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        with pytest.raises(PlayerError):
            await engine.play(channel, "gone")
        assert engine.get_queue(1) is None
        assert client.voice_clients == []
        await settle()
        assert events == []
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_others():
    client, engine, events = make_engine()

    async def broken(queue, song):
        raise RuntimeError("listener bug")

    engine.on("play_song", broken)
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        await engine.play(channel, "alpha")
        await settle()
        assert events == [("play_song", "alpha")]
    finally:
        await engine.close()


class SkipMessage:
    def __init__(self, guild):
        self.guild = guild
        self.content = "!skip"
        self.channel = None
        self.author = DummyAuthor()
        self.replies = []

    async def reply(self, content):
        self.replies.append(content)


class DummyAuthor:
    id = 5
    bot = False
    voice = None


@pytest.mark.asyncio
async def test_second_skip_before_callback_sees_shortened_queue():
    client, engine, events = make_engine()
    channel = FakeVoiceChannel(client, DummyGuild(), voice_cls=LateCallbackVoiceClient)
    dispatcher = CommandDispatcher(engine, SearchCache(), TrackResolver())
    try:
        await engine.play(channel, "alpha")
        await engine.play(channel, "beta")
        first, second = SkipMessage(channel.guild), SkipMessage(channel.guild)
        await dispatcher.handle_message(first)
        await dispatcher.handle_message(second)
        assert first.replies == [msg("SKIPPED")]
        assert second.replies == [msg("NO_MORE_SONGS")]
        await asyncio.sleep(0.05)
        await settle()
        queue = engine.get_queue(1)
        assert [s.name for s in queue.songs] == ["beta"]
        assert engine.get_voice(channel.guild).played[-1] == ("source", "https://stream/beta")
        assert events[-1] == ("play_song", "beta")
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_back_to_back_skips_land_on_the_right_song():
    client, engine, events = make_engine()
    channel = FakeVoiceChannel(client, DummyGuild(), voice_cls=LateCallbackVoiceClient)
    try:
        for name in ("alpha", "beta", "gamma"):
            await engine.play(channel, name)
        queue = engine.get_queue(1)
        assert queue.skip().name == "beta"
        assert queue.skip().name == "gamma"
        with pytest.raises(PlayerError):
            queue.skip()
        await asyncio.sleep(0.05)
        await settle()
        assert [s.name for s in queue.songs] == ["gamma"]
        assert engine.get_voice(channel.guild).played == [
            ("source", "https://stream/alpha"),
            ("source", "https://stream/gamma"),
        ]
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_song_without_stream_url_is_passed_over():
    client, engine, events = make_engine()

    def strict_source(url):
        if not url:
            raise PlayerError("Song has no stream URL")
        return ("source", url)

    engine.create_source = strict_source
    channel = FakeVoiceChannel(client, DummyGuild())
    try:
        await engine.play(channel, "alpha")
        queue = engine.get_queue(1)
        queue.songs.append(Song({"title": "broken"}))
        await engine.play(channel, "gamma")
        vc = engine.get_voice(channel.guild)
        vc.finish()
        await settle()
        assert [s.name for s in queue.songs] == ["gamma"]
        assert vc.played[-1] == ("source", "https://stream/gamma")
        assert events[-1] == ("play_song", "gamma")
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_lock_is_held_only_while_queueing():
    ytdl = FakeYtdl()
    client, engine, _ = make_engine(ytdl)
    channel = FakeVoiceChannel(client, DummyGuild())
    lock = asyncio.Lock()
    try:
        await lock.acquire()
        task = asyncio.create_task(engine.play(channel, "alpha", lock=lock))
        for _ in range(100):
            if ytdl.queries:
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.01)
        # extraction ran without the lock; queueing waits for it
        assert ytdl.queries == ["alpha"]
        assert engine.get_queue(1) is None
        assert not task.done()
        lock.release()
        song = await task
        assert song.name == "alpha"
        assert [s.name for s in engine.get_queue(1).songs] == ["alpha"]
    finally:
        await engine.close()


def test_unknown_event_rejected():
    engine = PlaybackEngine(FakeClient(), ytdl=FakeYtdl())
    try:
        with pytest.raises(ValueError):
            engine.on("song_finished", lambda *a: None)
    finally:
        engine._executor.shutdown(wait=False)
