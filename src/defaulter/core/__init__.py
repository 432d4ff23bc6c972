"""Core utilities shared across Plex Defaulter."""

from defaulter.core.redaction import mask_token

__all__ = ["mask_token"]
