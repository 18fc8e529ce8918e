"""
Custom exceptions for Jukebox Bot
"""

class JukeboxError(Exception):
    """Base exception for Jukebox Bot."""
    pass

class ConfigurationError(JukeboxError):
    """Raised when there's a configuration error."""
    pass

class PlayerError(JukeboxError):
    """Raised when there's a player error."""
    pass

class VoiceConnectionError(PlayerError):
    """Raised when joining or moving to a voice channel fails."""
    pass
