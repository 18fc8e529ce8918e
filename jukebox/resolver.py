"""
Track resolution helpers.

Two independent paths:
- Spotify track links are turned into a search-friendly title through the
  public oEmbed endpoint (no credentials needed).
- Free-text queries can be searched with the yt-dlp command-line tool as a
  fallback when the playback engine cannot find anything itself.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp

from jukebox.metrics import metric_inc
from jukebox.track import ResolvedTrack
from jukebox.utils import truncate

logger = logging.getLogger("Jukebox.Resolver")

SPOTIFY_DOMAIN = "spotify.com"
SPOTIFY_OEMBED_URL = "https://open.spotify.com/oembed"
SPOTIFY_TRACK_URL = "https://open.spotify.com/track/{track_id}"
SEARCH_OUTPUT_TEMPLATE = "%(title)s|%(webpage_url)s"


@dataclass(frozen=True)
class SearchOutcome:
    """Result of a fallback search: either a track or the reason there is none."""
    track: Optional[ResolvedTrack] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.track is not None

    @classmethod
    def found(cls, track: ResolvedTrack) -> 'SearchOutcome':
        return cls(track=track)

    @classmethod
    def failed(cls, error: str) -> 'SearchOutcome':
        return cls(error=error)


def is_spotify_link(query: str) -> bool:
    return SPOTIFY_DOMAIN in (query or "")


def extract_spotify_track_id(url: str) -> Optional[str]:
    """Return the id that follows ``track/`` in a Spotify link, or None."""
    if not url or "track/" not in url:
        return None
    tail = url.split("track/", 1)[1]
    for sep in ("?", "#", "/"):
        tail = tail.split(sep, 1)[0]
    tail = tail.strip()
    return tail or None


class TrackResolver:
    """Spotify metadata lookups and command-line fallback search."""

    def __init__(
        self,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
        search_binary: str = "yt-dlp",
        search_timeout: float = 30.0,
        metadata_timeout: float = 10.0,
    ) -> None:
        self._session_factory = session_factory
        self.search_binary = search_binary
        self.search_timeout = search_timeout
        self.metadata_timeout = metadata_timeout

    async def spotify_title(self, url: str) -> Optional[str]:
        """Look up the title of a Spotify track link.

        Returns None on a malformed link, network error, bad response or a
        missing title. Callers must stop there rather than fall back.
        """
        metric_inc("spotify_lookups")
        track_id = extract_spotify_track_id(url)
        if not track_id:
            logger.warning("Malformed Spotify link: %s", truncate(url, 200))
            metric_inc("spotify_failures")
            return None
        params = {"url": SPOTIFY_TRACK_URL.format(track_id=track_id)}
        timeout = aiohttp.ClientTimeout(total=self.metadata_timeout)
        try:
            async with self._session_factory(timeout=timeout) as session:
                async with session.get(SPOTIFY_OEMBED_URL, params=params) as resp:
                    if resp.status != 200:
                        logger.warning("Spotify oEmbed returned HTTP %s for track=%s", resp.status, track_id)
                        metric_inc("spotify_failures")
                        return None
                    payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Spotify oEmbed lookup failed for track=%s: %s", track_id, e)
            metric_inc("spotify_failures")
            return None
        title = payload.get("title") if isinstance(payload, dict) else None
        if not isinstance(title, str) or not title.strip():
            logger.warning("Spotify oEmbed response without title for track=%s", track_id)
            metric_inc("spotify_failures")
            return None
        logger.debug("Spotify track=%s resolved to %r", track_id, title)
        return title.strip()

    async def search(self, query: str) -> SearchOutcome:
        """Search with the yt-dlp CLI for exactly one result.

        Bounded by ``search_timeout``; the child process is killed on timeout
        and when the awaiting task is cancelled. Never retries.
        """
        metric_inc("fallback_searches")
        outcome = await self._run_search(query)
        if outcome.ok:
            logger.info("Fallback search hit query=%s title=%s", truncate(query, 120), truncate(outcome.track.title, 80))
        else:
            metric_inc("fallback_failures")
            logger.warning("Fallback search failed query=%s: %s", truncate(query, 120), outcome.error)
        return outcome

    async def _run_search(self, query: str) -> SearchOutcome:
        args = [self.search_binary, f"ytsearch1:{query}", "--print", SEARCH_OUTPUT_TEMPLATE]
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return SearchOutcome.failed(f"{self.search_binary} not found on PATH")
        except OSError as e:
            return SearchOutcome.failed(f"could not start {self.search_binary}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.search_timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            return SearchOutcome.failed(f"timed out after {self.search_timeout}s")
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            detail = (stderr or b"").decode("utf-8", "replace").strip()
            return SearchOutcome.failed(f"exit status {proc.returncode}: {truncate(detail, 300)}")
        lines = [ln for ln in (stdout or b"").decode("utf-8", "replace").splitlines() if ln.strip()]
        if not lines:
            return SearchOutcome.failed("empty output")
        track = ResolvedTrack.from_search_line(lines[0])
        if track is None:
            return SearchOutcome.failed(f"unparsable output: {truncate(lines[0], 200)}")
        return SearchOutcome.found(track)


async def _kill(proc) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
