"""
Track representations shared by the resolver, cache and playback engine.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jukebox.utils import format_duration


@dataclass(frozen=True)
class ResolvedTrack:
    """A title plus a URL the playback engine can play."""
    title: str
    url: str

    @classmethod
    def from_search_line(cls, line: str) -> Optional['ResolvedTrack']:
        """Parse a ``title|url`` line printed by the search tool.

        Titles may not contain the separator but URLs might, so only the first
        ``|`` splits. Returns None when either half is empty.
        """
        if not line or "|" not in line:
            return None
        title, url = line.split("|", 1)
        title, url = title.strip(), url.strip()
        if not title or not url:
            return None
        return cls(title=title, url=url)


class Song:
    """A queued song built from a yt-dlp info dict."""
    def __init__(self, data: Dict[str, Any], requested_by: Optional[str] = None) -> None:
        self.data = data
        self.name: str = data.get("title") or data.get("webpage_url") or "Unknown"
        self.url: Optional[str] = data.get("webpage_url") or data.get("original_url")
        self.stream_url: Optional[str] = data.get("url")
        self.duration: Optional[float] = data.get("duration")
        self.is_live: bool = bool(data.get("is_live") or data.get("live_status") in ("is_live", "started"))
        self.requested_by = requested_by

    @property
    def formatted_duration(self) -> str:
        if self.is_live:
            return "LIVE"
        return format_duration(self.duration)

    def __repr__(self) -> str:
        return f"<Song name={self.name!r} duration={self.formatted_duration}>"
