"""Domain models and enums shared across Plex Defaulter."""

from defaulter.domain.enums import ActionType, OutcomeStatus, TrackKind
from defaulter.domain.models import (
    Outcome,
    Part,
    PartSummary,
    RunStats,
    StreamSelection,
    Track,
    UpdatePlan,
    ViewerSummary,
)

__all__ = [
    "ActionType",
    "Outcome",
    "OutcomeStatus",
    "Part",
    "PartSummary",
    "RunStats",
    "StreamSelection",
    "Track",
    "TrackKind",
    "UpdatePlan",
    "ViewerSummary",
]
