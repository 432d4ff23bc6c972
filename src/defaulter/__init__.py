"""Plex Defaulter - keep per-user default audio/subtitle streams in sync."""

__version__ = "0.4.0"
