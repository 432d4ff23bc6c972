"""Per-part/group summaries and the end-of-run summary.

Summaries are written to the log, either as one JSON object per part/group
(``logJsonUserSummary``), one human-readable line (``logUserSummary``), or
both.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from defaulter.domain.enums import OutcomeStatus
from defaulter.domain.models import (
    PartSummary,
    RunStats,
    StreamSelection,
    ViewerSummary,
)

logger = logging.getLogger(__name__)

SUMMARY_EVENT = "user_updates"


def _selection_payload(selection: StreamSelection) -> dict[str, Any]:
    return {"id": selection.id, "label": selection.label}


def build_json_summary(summary: PartSummary) -> dict[str, Any]:
    """Build the structured form of a part/group summary."""
    users = []
    for viewer in summary.viewers:
        payload: dict[str, Any] = {"name": viewer.name, "status": viewer.status.value}
        if viewer.audio is not None:
            payload["audio"] = _selection_payload(viewer.audio)
        if viewer.subtitles is not None:
            payload["subtitles"] = _selection_payload(viewer.subtitles)
        if viewer.reason:
            payload["reason"] = viewer.reason
        if viewer.http_status:
            payload["httpStatus"] = viewer.http_status
        users.append(payload)

    return {
        "event": SUMMARY_EVENT,
        "library": summary.library,
        "group": summary.group,
        "partId": summary.part_id,
        "ratingKey": summary.rating_key,
        "title": summary.title,
        "users": users,
    }


def _format_viewer(viewer: ViewerSummary) -> str:
    details = []
    if viewer.audio is not None:
        details.append(f"audio='{viewer.audio.label}' (id={viewer.audio.id})")
    if viewer.subtitles is not None:
        if viewer.subtitles.is_disabled:
            details.append("subtitles=disabled")
        else:
            details.append(
                f"subtitles='{viewer.subtitles.label}' (id={viewer.subtitles.id})"
            )

    status = viewer.status.value
    if viewer.reason and viewer.status is not OutcomeStatus.SUCCESS:
        suffix = f"[{status}: {viewer.reason}]"
    else:
        suffix = f"[{status}]"

    prefix = f"{', '.join(details)} " if details else ""
    return f"{viewer.name}: {prefix}{suffix}".strip()


def format_text_summary(summary: PartSummary) -> str:
    """Build the one-line human-readable form of a part/group summary."""
    header = (
        f"User summary (library='{summary.library}', group='{summary.group}', "
        f"part={summary.part_id}, title='{summary.title}'):"
    )
    return f"{header} {', '.join(_format_viewer(v) for v in summary.viewers)}"


class LogSummaryReporter:
    """SummaryReporter writing summaries to the log."""

    def __init__(self, *, text: bool = False, json_format: bool = False) -> None:
        self.text = text
        self.json_format = json_format

    @property
    def enabled(self) -> bool:
        return self.text or self.json_format

    def emit(self, summary: PartSummary) -> None:
        if self.json_format:
            logger.info(json.dumps(build_json_summary(summary), default=str))
        if self.text:
            logger.info(format_text_summary(summary))


def log_run_summary(stats: RunStats) -> None:
    """Log the run counters and the per-viewer inaccessible-item skips."""
    logger.info(
        "Run summary: processed=%d, succeeded=%d, failed=%d, skipped=%d",
        stats.processed,
        stats.succeeded,
        stats.failed,
        stats.skipped,
    )
    if not stats.skipped_by_viewer:
        logger.info("skippedInaccessibleItemsByUser: none")
        return
    for viewer, count in stats.skipped_by_viewer.items():
        logger.info("skippedInaccessibleItemsByUser[%s] = %d", viewer, count)
