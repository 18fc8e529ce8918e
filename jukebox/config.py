"""
Configuration management for Jukebox Bot
"""
import os
import json
import logging
from typing import Dict, Any, Optional

from jukebox.exceptions import ConfigurationError

logger = logging.getLogger("Jukebox.Config")

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Load environment variables from .env file if exists
def load_env_file(env_path: Optional[str] = None) -> int:
    """Load environment variables from a .env file if it exists.

    Variables already present in the environment win. Returns how many were set.
    """
    if env_path is None:
        env_path = os.path.join(PROJECT_ROOT, '.env')
    if not os.path.exists(env_path):
        return 0
    loaded = 0
    try:
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")
                    # Only set if not already in environment
                    if key and not os.getenv(key):
                        os.environ[key] = value
                        loaded += 1
    except OSError as e:
        logger.warning("Could not load .env file: %s", e)
    return loaded

CONFIG_PATH = "config.json"
DEFAULT_CONFIG = {
    # Token should NEVER be in config file - use environment variables only
    "prefix": "!",
    "language": "en",
    "cache_size_limit": 256,
    "cache_ttl_seconds": 0,  # 0 means entries never expire
    "search_timeout_seconds": 30,
    "metadata_timeout_seconds": 10,
    "resolve_timeout_seconds": 20,
    # streaming profile: 'stable' (default) or 'low-latency'
    "stream_profile": "stable",
    "ffmpeg_bitrate": "128k",
    "search_binary": "yt-dlp",
    "trace_logging": False,
    "structured_logging": False,
    "log_file": "jukebox.log",
}

def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from config.json, merged with defaults."""
    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                user_conf = json.load(f)
            if not isinstance(user_conf, dict):
                raise ValueError("top-level JSON value must be an object")
            # Remove token from user config if it exists (security measure)
            if "token" in user_conf:
                logger.warning("Token found in %s - this is insecure. Please use the TOKEN environment variable instead.", path)
                del user_conf["token"]
            config = {**DEFAULT_CONFIG, **user_conf}
        except (OSError, ValueError) as e:
            logger.warning("Could not load %s: %s", path, e)
            config = DEFAULT_CONFIG.copy()
    else:
        config = DEFAULT_CONFIG.copy()

    return validate_config(config)

def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and sanitize configuration values.

    Invalid numeric values fall back to their defaults with a warning.
    """
    def clamp_int(key, minimum):
        default = DEFAULT_CONFIG[key]
        try:
            value = int(cfg.get(key))
        except (TypeError, ValueError):
            logger.warning("Config '%s' invalid (%s); fallback to %s", key, cfg.get(key), default)
            cfg[key] = default
            return
        if value < minimum:
            logger.warning("Config '%s'=%s < %s; fallback to %s", key, value, minimum, default)
            cfg[key] = default
        else:
            cfg[key] = value
    clamp_int("cache_size_limit", 1)
    clamp_int("cache_ttl_seconds", 0)
    clamp_int("search_timeout_seconds", 1)
    clamp_int("metadata_timeout_seconds", 1)
    clamp_int("resolve_timeout_seconds", 1)
    profile = cfg.get("stream_profile")
    if profile not in ("stable", "low-latency"):
        logger.warning("Unknown stream_profile=%s; fallback to 'stable'", profile)
        cfg["stream_profile"] = "stable"
    prefix = cfg.get("prefix")
    if not isinstance(prefix, str) or not prefix or prefix != prefix.strip():
        logger.warning("Invalid prefix=%r; fallback to %r", prefix, DEFAULT_CONFIG["prefix"])
        cfg["prefix"] = DEFAULT_CONFIG["prefix"]
    if cfg.get("language") not in ("en", "es"):
        logger.warning("Unknown language=%s; fallback to 'en'", cfg.get("language"))
        cfg["language"] = "en"
    return cfg

def get_token() -> str:
    """Get the bot token from environment variables only."""
    token = os.getenv("TOKEN") or os.getenv("DISCORD_TOKEN")
    if not token:
        raise ConfigurationError("TOKEN environment variable is required!")
    return token
