"""Domain models for Plex Defaulter.

This module contains the data shapes that flow between the selection engine,
the update orchestrator and the audit/summary sinks. They are independent of
the Plex wire format; ``defaulter.plex.parsers`` builds them from API payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from defaulter.domain.enums import OutcomeStatus, TrackKind

# Mapping of rule field names to Track attributes. Rules use the Plex JSON
# field names, anything not listed here is looked up in Track.attributes.
_TRACK_FIELDS: dict[str, str] = {
    "id": "id",
    "displayTitle": "display_title",
    "extendedDisplayTitle": "extended_display_title",
    "language": "language",
    "codec": "codec",
}


@dataclass(frozen=True)
class Track:
    """An audio or subtitle stream within a media part (immutable snapshot)."""

    id: int
    kind: TrackKind
    display_title: str | None = None
    extended_display_title: str | None = None
    language: str | None = None
    codec: str | None = None
    selected: bool = False
    # Raw stream attributes as returned by the server, used for rule fields
    # that have no dedicated attribute (e.g. "title", "languageCode", "forced").
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)

    def field_value(self, name: str) -> Any:
        """Return the value of a rule field for this track, or None."""
        attr = _TRACK_FIELDS.get(name)
        if attr is not None:
            return getattr(self, attr)
        return self.attributes.get(name)

    @property
    def label(self) -> str | None:
        """Human label used as the target of an update."""
        return (
            self.extended_display_title
            or self.display_title
            or self.language
            or self.codec
        )

    @property
    def current_label(self) -> str:
        """Human label used when this track is the currently selected one."""
        return (
            self.extended_display_title
            or self.display_title
            or self.language
            or "unknown"
        )


@dataclass(frozen=True)
class Part:
    """The playable file backing one movie or one episode."""

    part_id: int
    rating_key: int | str
    title: str
    tracks: tuple[Track, ...] = ()
    # Streams of every type on the file, video included (None: tracks only)
    stream_count: int | None = None

    @property
    def total_streams(self) -> int:
        """Number of streams to choose between, video included when known."""
        if self.stream_count is not None:
            return self.stream_count
        return len(self.tracks)

    @property
    def audio_tracks(self) -> list[Track]:
        return [t for t in self.tracks if t.kind is TrackKind.AUDIO]

    @property
    def subtitle_tracks(self) -> list[Track]:
        return [t for t in self.tracks if t.kind is TrackKind.SUBTITLE]

    @property
    def selected_audio(self) -> Track | None:
        """Currently selected audio track, or None."""
        return next((t for t in self.audio_tracks if t.selected), None)

    @property
    def selected_subtitle(self) -> Track | None:
        """Currently selected subtitle track, or None."""
        return next((t for t in self.subtitle_tracks if t.selected), None)


@dataclass(frozen=True)
class StreamSelection:
    """A stream id with its display label.

    A subtitle selection with id 0 means "subtitles disabled".
    """

    id: int | str
    label: str = ""

    @property
    def is_disabled(self) -> bool:
        return self.id == 0


@dataclass(frozen=True)
class UpdatePlan:
    """Selections to push for one part, plus the previously selected streams."""

    part_id: int
    rating_key: int | str
    title: str
    audio: StreamSelection | None = None
    subtitles: StreamSelection | None = None
    from_audio: StreamSelection | None = None
    from_subtitles: StreamSelection | None = None

    @property
    def has_changes(self) -> bool:
        """True when at least one selection is present (subtitle id 0 counts)."""
        return self.audio is not None or self.subtitles is not None

    def query_params(self) -> dict[str, str]:
        """Query parameters for the "set default streams" request."""
        params: dict[str, str] = {}
        if self.audio is not None:
            params["audioStreamID"] = str(self.audio.id)
        if self.subtitles is not None:
            params["subtitleStreamID"] = str(self.subtitles.id)
        return params


@dataclass(frozen=True)
class Outcome:
    """Recorded result of one selection update for one viewer.

    Exactly one Outcome is emitted per (part, group, viewer) per run.
    """

    plan: UpdatePlan
    library: str
    group: str
    viewer: str
    status: OutcomeStatus
    reason: str | None = None
    http_status: int | None = None
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ViewerSummary:
    """Per-viewer entry of a part/group summary."""

    name: str
    status: OutcomeStatus
    reason: str | None = None
    http_status: int | None = None
    audio: StreamSelection | None = None
    subtitles: StreamSelection | None = None


@dataclass
class PartSummary:
    """Summary of applying one plan to every viewer of one group."""

    library: str
    group: str
    part_id: int
    rating_key: int | str
    title: str
    viewers: list[ViewerSummary] = field(default_factory=list)


@dataclass
class RunStats:
    """Process-wide counters for one run invocation."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    skipped_by_viewer: dict[str, int] = field(default_factory=dict)

    def reset(self) -> None:
        """Reset all counters at the start of a run."""
        self.processed = 0
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0
        self.skipped_by_viewer = {}

    def record_skip(self, viewer: str) -> None:
        """Count an inaccessible-item skip for a viewer."""
        self.skipped += 1
        self.skipped_by_viewer[viewer] = self.skipped_by_viewer.get(viewer, 0) + 1
