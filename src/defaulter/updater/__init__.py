"""Applying stream selections to viewers.

Public API:
- UpdateOrchestrator: retry/skip/abort driver over plans and viewers
- MediaRequestError / FatalRunError / RunInterruptedError: update failures
- build_audit_record / describe_action_type: outcome shaping
"""

from defaulter.updater.exceptions import (
    FatalRunError,
    MediaRequestError,
    RunInterruptedError,
    UpdateError,
)
from defaulter.updater.interfaces import (
    AuditSink,
    MediaClient,
    SummaryReporter,
    TokenLookup,
)
from defaulter.updater.orchestrator import (
    REASON_INTERRUPTED,
    REASON_NO_TOKEN,
    UpdateOrchestrator,
)
from defaulter.updater.outcomes import (
    AUDIT_FIELDS,
    StreamTransition,
    build_audit_record,
    build_stream_transition,
    build_viewer_summary,
    describe_action_type,
)

__all__ = [
    "AUDIT_FIELDS",
    "REASON_INTERRUPTED",
    "REASON_NO_TOKEN",
    "AuditSink",
    "FatalRunError",
    "MediaClient",
    "MediaRequestError",
    "RunInterruptedError",
    "StreamTransition",
    "SummaryReporter",
    "TokenLookup",
    "UpdateError",
    "UpdateOrchestrator",
    "build_audit_record",
    "build_stream_transition",
    "build_viewer_summary",
    "describe_action_type",
]
