"""
Metrics tracking for Jukebox Bot
"""
from typing import Dict

# --- Metrics ---
_DEFAULTS = {
    "commands_handled": 0,
    "command_errors": 0,
    "cache_hits": 0,
    "cache_miss": 0,
    "cache_evicted": 0,
    "cache_expired": 0,
    "spotify_lookups": 0,
    "spotify_failures": 0,
    "fallback_searches": 0,
    "fallback_failures": 0,
    "primary_play_failures": 0,
    "queue_add": 0,
    "playback_start": 0,
    "playback_finish": 0,
    "playback_error": 0,
    "resolve_time_total_seconds": 0.0,
    "resolve_time_count": 0,
}

_METRICS = dict(_DEFAULTS)

def metric_inc(name: str, delta: int = 1):
    """Increment a metric by delta."""
    _METRICS[name] = _METRICS.get(name, 0) + delta

def metric_add_time(name: str, seconds: float):
    """Add an observation to a *_total_seconds / *_count pair."""
    _METRICS[f"{name}_total_seconds"] = _METRICS.get(f"{name}_total_seconds", 0.0) + seconds
    _METRICS[f"{name}_count"] = _METRICS.get(f"{name}_count", 0) + 1

def metrics_snapshot() -> Dict[str, float]:
    """Get a snapshot of current metrics."""
    return dict(_METRICS)

def metrics_reset() -> None:
    _METRICS.clear()
    _METRICS.update(_DEFAULTS)

def get_average_resolve_time() -> float:
    """Get average resolve time in seconds."""
    total = _METRICS.get("resolve_time_total_seconds", 0.0)
    count = _METRICS.get("resolve_time_count", 0) or 0
    return (total / count) if count else 0.0
