"""
Utility functions for Jukebox Bot
"""
from typing import Optional


def format_duration(sec: Optional[float]) -> str:
    """Format duration in seconds to readable string."""
    if sec is None:
        return "??:??"
    if sec == 0:
        return "LIVE"
    h, rem = divmod(int(sec), 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h:d}:{m:02d}:{s:02d}"
    return f"{m:d}:{s:02d}"

def truncate(text: Optional[str], n: int = 60) -> str:
    """Truncate text to specified length with ellipsis."""
    if not text:
        return ""
    return text if len(text) <= n else text[: n - 1].rstrip() + "…"
