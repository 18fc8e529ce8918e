"""Jukebox Bot: chat-command music playback for Discord."""

__version__ = "1.0.0"
