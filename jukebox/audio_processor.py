"""
Audio processing and FFmpeg configuration module.
Handles stream profiles, audio source creation, and URL sanitization.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse, parse_qsl, urlencode, urlunparse

import discord

logger = logging.getLogger("Jukebox.AudioProcessor")

HTTP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/115.0.0.0 Safari/537.36"
)


@lru_cache(maxsize=256)
def sanitize_stream_url(url: Optional[str]) -> Optional[str]:
    """Strip range/offset query params that make FFmpeg start mid-track."""
    if not url:
        return url
    try:
        pr = urlparse(url)
    except ValueError:
        return url
    q = parse_qsl(pr.query, keep_blank_values=True)
    bad_keys = {"range", "rn", "rbuf", "start", "st", "begin", "sq", "dur", "t", "offset"}
    filtered = [(k, v) for (k, v) in q if k.lower() not in bad_keys]
    return urlunparse((pr.scheme, pr.netloc, pr.path, pr.params, urlencode(filtered), pr.fragment))


def pick_best_audio_url(info: Dict[str, Any]) -> Optional[str]:
    """Select the best audio URL from a yt-dlp info dict.

    Audio-only formats win over muxed ones, then higher abr, then Opus/AAC.
    HLS is penalised. Falls back to the top-level ``url``.
    """
    direct = info.get("url")
    formats = info.get("formats") or []
    if not formats:
        return sanitize_stream_url(direct) if direct else None

    candidates = [f for f in formats if f.get("url") and f.get("acodec") not in (None, "none")]
    if not candidates:
        candidates = [f for f in formats if f.get("url")]
    if not candidates:
        return sanitize_stream_url(direct) if direct else None

    def score(f):
        s = 0
        try:
            s += int(f.get("abr") or 0) * 12
        except (TypeError, ValueError):
            pass
        acodec = (f.get("acodec") or "").lower()
        if "opus" in acodec:
            s += 1200
        elif "aac" in acodec or "mp4a" in acodec:
            s += 800
        proto = (f.get("protocol") or "").lower()
        if "m3u8" in proto or "hls" in proto:
            s -= 1200
        if f.get("vcodec") in (None, "none"):
            s += 150
        return s

    best = max(candidates, key=score)
    return sanitize_stream_url(best.get("url"))


def get_ffmpeg_options_for_profile(stream_profile: str, ffmpeg_bitrate: str, http_ua: str = HTTP_UA) -> Tuple[str, str]:
    """Generate FFmpeg (before_options, options) for a stream profile."""
    before = (
        "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5 "
        "-nostdin "
        f"-headers \"User-Agent: {http_ua}\\r\\n\""
    )
    if stream_profile == "low-latency":
        opts = (
            f"-vn -b:a {ffmpeg_bitrate} -ar 48000 "
            "-nostats -loglevel error -probesize 64k -analyzeduration 100000"
        )
    else:  # stable
        opts = (
            f"-vn -b:a {ffmpeg_bitrate} -ar 48000 "
            "-fflags +genpts -avoid_negative_ts make_zero "
            "-nostats -loglevel error"
        )
    return before, opts


def create_audio_source(stream_url: str, stream_profile: str = "stable", ffmpeg_bitrate: str = "128k") -> discord.AudioSource:
    """Build the FFmpeg-backed audio source discord.py plays."""
    before, options = get_ffmpeg_options_for_profile(stream_profile, ffmpeg_bitrate)
    logger.debug("FFmpeg profile=%s options=%s", stream_profile, options)
    return discord.FFmpegPCMAudio(stream_url, before_options=before, options=options)
