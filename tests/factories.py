"""Test doubles and builders shared by the unit tests."""

from __future__ import annotations

from typing import Any

from defaulter.domain.enums import TrackKind
from defaulter.domain.models import Outcome, Part, PartSummary, Track, UpdatePlan


def make_track(
    track_id: int,
    kind: TrackKind = TrackKind.AUDIO,
    *,
    selected: bool = False,
    **fields: Any,
) -> Track:
    """Build a Track from Plex-style field names (displayTitle, title, ...)."""
    return Track(
        id=track_id,
        kind=kind,
        display_title=fields.get("displayTitle"),
        extended_display_title=fields.get("extendedDisplayTitle"),
        language=fields.get("language"),
        codec=fields.get("codec"),
        selected=selected,
        attributes={"id": track_id, **fields},
    )


def make_part(
    part_id: int = 100, *tracks: Track, title: str = "Example", rating_key: int = 1
) -> Part:
    return Part(part_id=part_id, rating_key=rating_key, title=title, tracks=tracks)


class FakeMediaClient:
    """MediaClient returning scripted results in order.

    Each result is either an int status code or an exception to raise.
    The last result repeats once the script is exhausted.
    """

    def __init__(self, *results: int | Exception) -> None:
        self.results = list(results) or [200]
        self.calls: list[tuple[str, str, int]] = []

    def apply(self, viewer: str, token: str, plan: UpdatePlan) -> int:
        self.calls.append((viewer, token, plan.part_id))
        index = min(len(self.calls) - 1, len(self.results) - 1)
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingAudit:
    """AuditSink keeping outcomes in memory."""

    def __init__(self) -> None:
        self.outcomes: list[Outcome] = []

    def append(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)

    def close(self) -> None:
        pass


class RecordingReporter:
    """SummaryReporter keeping summaries in memory."""

    def __init__(self) -> None:
        self.summaries: list[PartSummary] = []

    def emit(self, summary: PartSummary) -> None:
        self.summaries.append(summary)


class DictTokens:
    """TokenLookup over a plain dict."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self.tokens = tokens

    def lookup(self, viewer: str) -> str | None:
        return self.tokens.get(viewer)


