"""Per-viewer update orchestration.

Drives the "set default streams" request for every (group, plan, viewer)
triple with a retry/skip/abort policy. Calls are strictly sequential: no two
mutation requests are ever in flight at the same time.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from typing import NoReturn

from defaulter.domain.enums import OutcomeStatus
from defaulter.domain.models import Outcome, PartSummary, RunStats, UpdatePlan
from defaulter.logging.context import run_context
from defaulter.updater.exceptions import MediaRequestError, RunInterruptedError
from defaulter.updater.interfaces import (
    AuditSink,
    MediaClient,
    SummaryReporter,
    TokenLookup,
)
from defaulter.updater.outcomes import build_viewer_summary

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_RETRY_DELAY = 30.0
DEFAULT_PACING_DELAY = 0.1

REASON_NO_TOKEN = "no_token"
REASON_INTERRUPTED = "interrupted"


class UpdateOrchestrator:
    """Applies UpdatePlans to every viewer of each group.

    Per viewer the state machine is::

        PENDING -> SUCCESS | ERROR | SKIPPED(no_token) | SKIPPED(403)
                | DRY_RUN | RETRY(k < max) -> ... -> FATAL

    FATAL is the only state that stops the run; apply() then returns False
    and the caller must not start any further work. A set stop event ends
    the run early with RunInterruptedError: no further viewer is started and
    a viewer waiting between retries is recorded as an error.
    """

    def __init__(
        self,
        media_client: MediaClient,
        token_store: TokenLookup,
        audit_sink: AuditSink,
        reporter: SummaryReporter,
        stats: RunStats,
        *,
        skip_inaccessible_items: bool = False,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        pacing_delay: float = DEFAULT_PACING_DELAY,
        sleep: Callable[[float], object] | None = None,
        stop_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_fatal: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            media_client: Client performing the per-viewer mutation.
            token_store: Viewer credential lookup.
            audit_sink: Receives one Outcome per (part, group, viewer).
            reporter: Receives one PartSummary per (part, group).
            stats: Run counters, shared with the caller.
            skip_inaccessible_items: Treat HTTP 403 errors as skips instead
                of retrying them.
            retry_delay: Seconds to wait between attempts.
            pacing_delay: Seconds to wait after each non-aborting step.
            sleep: Sleep function (injectable for tests). Defaults to
                waiting on stop_event, so backoffs end as soon as a stop
                is requested.
            stop_event: Set to stop the run between viewers and retries.
            clock: Monotonic clock returning seconds (injectable for tests).
            on_fatal: Called once when the retry budget is exhausted.
        """
        self._client = media_client
        self._tokens = token_store
        self._audit = audit_sink
        self._reporter = reporter
        self._stats = stats
        self._skip_inaccessible_items = skip_inaccessible_items
        self._retry_delay = retry_delay
        self._pacing_delay = pacing_delay
        if sleep is None:
            sleep = stop_event.wait if stop_event is not None else time.sleep
        self._sleep = sleep
        self._stop_event = stop_event
        self._clock = clock
        self._on_fatal = on_fatal

    def apply(
        self,
        library: str,
        plan_set: Mapping[str, Sequence[UpdatePlan]],
        viewers_by_group: Mapping[str, Sequence[str]],
        *,
        dry_run: bool = False,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> bool:
        """Apply every plan of every group to the group's viewers.

        Args:
            library: Library name, used for audit records and summaries.
            plan_set: Plans keyed by group, in configuration order.
            viewers_by_group: Resolved (access-checked) viewers per group.
            dry_run: Record dry_run outcomes without any network call.
            max_attempts: Attempt budget per viewer for thrown errors.

        Returns:
            True when all plans were processed, False on fatal abort.
        """
        for group, plans in plan_set.items():
            with run_context(library, group):
                viewers = list(viewers_by_group.get(group) or ())
                if not viewers:
                    logger.warning(
                        "No users resolved for group '%s'; skipping %d update(s)",
                        group,
                        len(plans),
                    )
                    continue

                for plan in plans:
                    if not self._apply_plan(
                        library, group, plan, viewers, dry_run, max_attempts
                    ):
                        return False
        return True

    def _apply_plan(
        self,
        library: str,
        group: str,
        plan: UpdatePlan,
        viewers: Sequence[str],
        dry_run: bool,
        max_attempts: int,
    ) -> bool:
        summary = PartSummary(
            library=library,
            group=group,
            part_id=plan.part_id,
            rating_key=plan.rating_key,
            title=plan.title,
        )

        for viewer in viewers:
            if self._stop_requested():
                self._interrupt(summary)
            token = self._tokens.lookup(viewer)
            if not token:
                logger.warning(
                    "No token found for user '%s' in group '%s'. Skipping.",
                    viewer,
                    group,
                )
                self._record(
                    summary,
                    Outcome(
                        plan=plan,
                        library=library,
                        group=group,
                        viewer=viewer,
                        status=OutcomeStatus.SKIPPED,
                        reason=REASON_NO_TOKEN,
                    ),
                )
                continue

            if dry_run:
                logger.info(
                    "[DRY RUN] Would update Part ID %s for user '%s' (group '%s')",
                    plan.part_id,
                    viewer,
                    group,
                )
                self._record(
                    summary,
                    Outcome(
                        plan=plan,
                        library=library,
                        group=group,
                        viewer=viewer,
                        status=OutcomeStatus.DRY_RUN,
                    ),
                )
                continue

            if not self._apply_viewer(
                library, group, plan, viewer, token, summary, max_attempts
            ):
                return False

        logger.info("Part ID %s: update complete for group %s", plan.part_id, group)
        self._reporter.emit(summary)
        return True

    def _apply_viewer(
        self,
        library: str,
        group: str,
        plan: UpdatePlan,
        viewer: str,
        token: str,
        summary: PartSummary,
        max_attempts: int,
    ) -> bool:
        self._stats.processed += 1
        started = self._clock()
        attempt = 0

        while True:
            try:
                status_code = self._client.apply(viewer, token, plan)
            except MediaRequestError as e:
                if (
                    e.http_status == 403
                    and self._skip_inaccessible_items
                ):
                    logger.warning(
                        "Skipping inaccessible Part ID %s for user '%s' (HTTP 403)",
                        plan.part_id,
                        viewer,
                        extra={
                            "viewer": viewer,
                            "part_id": plan.part_id,
                            "status": OutcomeStatus.SKIPPED.value,
                            "http_status": 403,
                        },
                    )
                    self._stats.record_skip(viewer)
                    self._record(
                        summary,
                        self._outcome(
                            plan, library, group, viewer, started,
                            OutcomeStatus.SKIPPED, "HTTP 403", 403,
                        ),
                    )
                    self._sleep(self._pacing_delay)
                    return True
                error: Exception = e
                http_status = e.http_status
            except Exception as e:
                error = e
                http_status = None
            else:
                if status_code == 200:
                    self._stats.succeeded += 1
                    logger.info(
                        "Updated default streams for user '%s' on Part ID %s",
                        viewer,
                        plan.part_id,
                        extra={
                            "viewer": viewer,
                            "part_id": plan.part_id,
                            "status": OutcomeStatus.SUCCESS.value,
                        },
                    )
                    outcome = self._outcome(
                        plan, library, group, viewer, started,
                        OutcomeStatus.SUCCESS, None, status_code,
                    )
                else:
                    self._stats.failed += 1
                    logger.error(
                        "Failed to update Part ID %s for user '%s': HTTP %s",
                        plan.part_id,
                        viewer,
                        status_code,
                        extra={
                            "viewer": viewer,
                            "part_id": plan.part_id,
                            "status": OutcomeStatus.ERROR.value,
                            "http_status": status_code,
                        },
                    )
                    outcome = self._outcome(
                        plan, library, group, viewer, started,
                        OutcomeStatus.ERROR, f"HTTP {status_code}", status_code,
                    )
                self._record(summary, outcome)
                self._sleep(self._pacing_delay)
                return True

            attempt += 1
            logger.error(
                "Error updating Part ID %s for user '%s' (attempt %d/%d): %s",
                plan.part_id,
                viewer,
                attempt,
                max_attempts,
                error,
                extra={
                    "viewer": viewer,
                    "part_id": plan.part_id,
                    "http_status": http_status,
                    "attempt": attempt,
                },
            )
            if attempt < max_attempts:
                logger.info("Retrying in %.1f seconds...", self._retry_delay)
                self._sleep(self._retry_delay)
                if self._stop_requested():
                    self._stats.failed += 1
                    self._record(
                        summary,
                        self._outcome(
                            plan, library, group, viewer, started,
                            OutcomeStatus.ERROR, REASON_INTERRUPTED, http_status,
                        ),
                    )
                    self._interrupt(summary)
                continue

            logger.error(
                "Max retry attempts reached for user '%s' on Part ID %s. Aborting run.",
                viewer,
                plan.part_id,
            )
            self._stats.failed += 1
            self._record(
                summary,
                self._outcome(
                    plan, library, group, viewer, started,
                    OutcomeStatus.ERROR, str(error) or type(error).__name__,
                    http_status,
                ),
            )
            self._reporter.emit(summary)
            if self._on_fatal is not None:
                self._on_fatal()
            return False

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def _interrupt(self, summary: PartSummary) -> NoReturn:
        if summary.viewers:
            self._reporter.emit(summary)
        logger.warning(
            "Stop requested; not updating Part ID %s for remaining users",
            summary.part_id,
        )
        raise RunInterruptedError(summary.library)

    def _outcome(
        self,
        plan: UpdatePlan,
        library: str,
        group: str,
        viewer: str,
        started: float,
        status: OutcomeStatus,
        reason: str | None,
        http_status: int | None,
    ) -> Outcome:
        return Outcome(
            plan=plan,
            library=library,
            group=group,
            viewer=viewer,
            status=status,
            reason=reason,
            http_status=http_status,
            duration_ms=int((self._clock() - started) * 1000),
        )

    def _record(self, summary: PartSummary, outcome: Outcome) -> None:
        self._audit.append(outcome)
        summary.viewers.append(build_viewer_summary(outcome))
