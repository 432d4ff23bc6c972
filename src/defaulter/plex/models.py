"""Data models for Plex Media Server responses."""

from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_LIBRARY_TYPES = frozenset({"movie", "show"})


@dataclass(frozen=True)
class LibrarySection:
    """A library section as listed by ``/library/sections``."""

    key: str
    title: str
    type: str

    @property
    def is_supported(self) -> bool:
        return self.type in SUPPORTED_LIBRARY_TYPES


@dataclass(frozen=True)
class MediaItem:
    """A top-level item of a library (movie or show)."""

    rating_key: str
    title: str
    updated_at: int = 0


@dataclass(frozen=True)
class SharedUser:
    """A plex.tv user the server is shared with, with their server token."""

    username: str
    access_token: str
