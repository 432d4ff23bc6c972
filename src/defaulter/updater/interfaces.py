"""Collaborator protocols used by the update orchestrator."""

from __future__ import annotations

from typing import Protocol

from defaulter.domain.models import Outcome, PartSummary, UpdatePlan


class MediaClient(Protocol):
    """Applies one selection for one viewer."""

    def apply(self, viewer: str, token: str, plan: UpdatePlan) -> int:
        """Send the "set default streams" request.

        Returns:
            HTTP status code of the response.

        Raises:
            MediaRequestError: On transport failure or an error status.
        """
        ...


class TokenLookup(Protocol):
    """Resolves a viewer's own credential."""

    def lookup(self, viewer: str) -> str | None: ...


class AuditSink(Protocol):
    """Durable, append-only outcome log."""

    def append(self, outcome: Outcome) -> None: ...


class SummaryReporter(Protocol):
    """Consumes per-part/group summaries."""

    def emit(self, summary: PartSummary) -> None: ...
