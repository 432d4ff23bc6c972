"""Outcome shaping for audit records and summaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from defaulter.domain.enums import ActionType
from defaulter.domain.models import (
    Outcome,
    StreamSelection,
    UpdatePlan,
    ViewerSummary,
)

AUDIT_FIELDS: tuple[str, ...] = (
    "timestamp",
    "libraryName",
    "ratingKey",
    "partId",
    "title",
    "group",
    "user",
    "actionType",
    "fromStreamId",
    "fromLabel",
    "toStreamId",
    "toLabel",
    "status",
    "reason",
    "httpStatus",
    "durationMs",
)


@dataclass(frozen=True)
class StreamTransition:
    """From/to stream ids and labels, pipe-joined when both kinds change."""

    from_stream_id: str | None
    from_label: str | None
    to_stream_id: str | None
    to_label: str | None


def describe_action_type(plan: UpdatePlan) -> ActionType:
    """Derive the action type from the selections present in a plan."""
    audio = plan.audio is not None
    subtitles = plan.subtitles is not None
    if audio and subtitles:
        return ActionType.AUDIO_AND_SUBTITLES
    if audio:
        return ActionType.AUDIO
    if subtitles:
        return ActionType.SUBTITLES
    return ActionType.NONE


def _append(
    target: StreamSelection,
    previous: StreamSelection | None,
    ids: tuple[list[str], list[str]],
    labels: tuple[list[str], list[str]],
) -> None:
    ids[0].append(str(previous.id) if previous is not None else "")
    labels[0].append(previous.label if previous is not None else "")
    ids[1].append(str(target.id))
    labels[1].append(target.label or "")


def build_stream_transition(plan: UpdatePlan) -> StreamTransition:
    """Build the from/to columns of an audit record."""
    ids: tuple[list[str], list[str]] = ([], [])
    labels: tuple[list[str], list[str]] = ([], [])

    if plan.audio is not None:
        _append(plan.audio, plan.from_audio, ids, labels)
    if plan.subtitles is not None:
        _append(plan.subtitles, plan.from_subtitles, ids, labels)

    return StreamTransition(
        from_stream_id="|".join(ids[0]) or None,
        from_label=" | ".join(labels[0]) or None,
        to_stream_id="|".join(ids[1]) or None,
        to_label=" | ".join(labels[1]) or None,
    )


def build_audit_record(outcome: Outcome) -> dict[str, Any]:
    """Flatten an Outcome into an audit record keyed by AUDIT_FIELDS."""
    plan = outcome.plan
    transition = build_stream_transition(plan)
    return {
        "timestamp": outcome.timestamp.isoformat(timespec="milliseconds").replace(
            "+00:00", "Z"
        ),
        "libraryName": outcome.library,
        "ratingKey": plan.rating_key,
        "partId": plan.part_id,
        "title": plan.title,
        "group": outcome.group,
        "user": outcome.viewer,
        "actionType": describe_action_type(plan).value,
        "fromStreamId": transition.from_stream_id,
        "fromLabel": transition.from_label,
        "toStreamId": transition.to_stream_id,
        "toLabel": transition.to_label,
        "status": outcome.status.value,
        "reason": outcome.reason,
        "httpStatus": outcome.http_status,
        "durationMs": outcome.duration_ms,
    }


def build_viewer_summary(outcome: Outcome) -> ViewerSummary:
    """Build the summary entry for one viewer from its outcome."""
    return ViewerSummary(
        name=outcome.viewer,
        status=outcome.status,
        reason=outcome.reason,
        http_status=outcome.http_status,
        audio=outcome.plan.audio,
        subtitles=outcome.plan.subtitles,
    )
