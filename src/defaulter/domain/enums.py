"""Domain enums for Plex Defaulter.

This module contains enums shared by the selection engine, the update
orchestrator and the reporting layers.
"""

from enum import Enum


class TrackKind(Enum):
    """Kind of a selectable stream within a media part.

    Values match the Plex ``streamType`` codes.
    """

    AUDIO = 2
    SUBTITLE = 3

    @classmethod
    def from_stream_type(cls, stream_type: object) -> "TrackKind | None":
        """Map a raw Plex ``streamType`` value to a TrackKind.

        Video (1) and unknown stream types return None.
        """
        try:
            return cls(int(stream_type))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None


class OutcomeStatus(Enum):
    """Terminal status of one selection update for one viewer."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"
    DRY_RUN = "dry_run"


class ActionType(Enum):
    """Which stream kinds an update plan changes."""

    AUDIO = "audio"
    SUBTITLES = "subtitles"
    AUDIO_AND_SUBTITLES = "audio+subtitles"
    NONE = "none"
