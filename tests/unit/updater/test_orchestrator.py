"""Unit tests for the per-viewer update orchestrator."""

import logging
import threading

import pytest
from factories import (
    DictTokens,
    FakeMediaClient,
    RecordingAudit,
    RecordingReporter,
)

from defaulter.domain.enums import OutcomeStatus
from defaulter.domain.models import RunStats, StreamSelection, UpdatePlan
from defaulter.updater.exceptions import MediaRequestError, RunInterruptedError
from defaulter.updater.orchestrator import (
    REASON_INTERRUPTED,
    REASON_NO_TOKEN,
    UpdateOrchestrator,
)


def make_plan(part_id: int = 100) -> UpdatePlan:
    return UpdatePlan(
        part_id=part_id,
        rating_key=part_id + 1,
        title=f"Item {part_id}",
        audio=StreamSelection(2, "English (AC3)"),
    )


class Harness:
    """Orchestrator with recording collaborators."""

    def __init__(self, client: FakeMediaClient, tokens: dict[str, str], **kwargs):
        self.client = client
        self.audit = RecordingAudit()
        self.reporter = RecordingReporter()
        self.stats = RunStats()
        self.sleeps: list[float] = []
        self.fatal_calls = 0

        def on_fatal() -> None:
            self.fatal_calls += 1

        sleep = kwargs.pop("sleep", self.sleeps.append)
        self.orchestrator = UpdateOrchestrator(
            client,
            DictTokens(tokens),
            self.audit,
            self.reporter,
            self.stats,
            retry_delay=30.0,
            pacing_delay=0.1,
            sleep=sleep,
            clock=lambda: 0.0,
            on_fatal=on_fatal,
            **kwargs,
        )

    @property
    def statuses(self) -> list[tuple[str, OutcomeStatus, str | None]]:
        return [(o.viewer, o.status, o.reason) for o in self.audit.outcomes]


@pytest.fixture
def tokens() -> dict[str, str]:
    return {"alice": "alice-token-0001", "bob": "bob-token-0002"}


class TestApply:
    """Tests for UpdateOrchestrator.apply()."""

    def test_success_records_outcome_and_summary(self, tokens) -> None:
        """A 200 response records success for every viewer."""
        h = Harness(FakeMediaClient(200), tokens)
        plan = make_plan()

        assert h.orchestrator.apply(
            "Movies", {"crew": [plan]}, {"crew": ["alice", "bob"]}
        )

        assert h.statuses == [
            ("alice", OutcomeStatus.SUCCESS, None),
            ("bob", OutcomeStatus.SUCCESS, None),
        ]
        assert h.client.calls == [
            ("alice", "alice-token-0001", 100),
            ("bob", "bob-token-0002", 100),
        ]
        assert h.audit.outcomes[0].http_status == 200
        assert h.stats.processed == 2
        assert h.stats.succeeded == 2
        assert len(h.reporter.summaries) == 1
        summary = h.reporter.summaries[0]
        assert summary.library == "Movies"
        assert summary.group == "crew"
        assert summary.part_id == 100
        assert [v.name for v in summary.viewers] == ["alice", "bob"]
        assert h.sleeps == [0.1, 0.1]

    def test_missing_token_is_skipped(self, tokens) -> None:
        """A viewer without a credential gets a no_token skip and no call."""
        h = Harness(FakeMediaClient(200), tokens)

        assert h.orchestrator.apply(
            "Movies", {"crew": [make_plan()]}, {"crew": ["carol"]}
        )

        outcome = h.audit.outcomes[0]
        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.reason == REASON_NO_TOKEN
        assert outcome.http_status is None
        assert h.client.calls == []
        assert h.stats.processed == 0

    def test_tolerated_403_is_skipped(self, tokens) -> None:
        """HTTP 403 with tolerance enabled is a per-viewer skip."""
        h = Harness(
            FakeMediaClient(MediaRequestError("forbidden", http_status=403), 200),
            tokens,
            skip_inaccessible_items=True,
        )

        assert h.orchestrator.apply(
            "Movies", {"crew": [make_plan()]}, {"crew": ["alice", "bob"]}
        )

        assert h.statuses == [
            ("alice", OutcomeStatus.SKIPPED, "HTTP 403"),
            ("bob", OutcomeStatus.SUCCESS, None),
        ]
        assert h.audit.outcomes[0].http_status == 403
        assert h.stats.skipped == 1
        assert h.stats.skipped_by_viewer == {"alice": 1}
        assert 30.0 not in h.sleeps

    def test_untolerated_403_is_retried(self, tokens) -> None:
        """Without tolerance a 403 is retried like any error."""
        h = Harness(
            FakeMediaClient(MediaRequestError("forbidden", http_status=403), 200),
            tokens,
        )

        assert h.orchestrator.apply(
            "Movies", {"crew": [make_plan()]}, {"crew": ["alice"]}
        )

        assert h.statuses == [("alice", OutcomeStatus.SUCCESS, None)]
        assert len(h.client.calls) == 2
        assert h.sleeps == [30.0, 0.1]
        assert h.stats.skipped == 0

    def test_non_200_status_is_terminal_error(self, tokens) -> None:
        """A non-200 response without an exception is not retried."""
        h = Harness(FakeMediaClient(204), tokens)

        assert h.orchestrator.apply(
            "Movies", {"crew": [make_plan()]}, {"crew": ["alice"]}
        )

        assert h.statuses == [("alice", OutcomeStatus.ERROR, "HTTP 204")]
        assert h.audit.outcomes[0].http_status == 204
        assert len(h.client.calls) == 1
        assert h.stats.failed == 1

    def test_exhausted_retries_abort_run(self, tokens) -> None:
        """Exhausting the attempt budget records one error and stops everything."""
        h = Harness(FakeMediaClient(RuntimeError("connection reset")), tokens)
        plans = {"crew": [make_plan(100), make_plan(200)], "later": [make_plan(300)]}
        viewers = {"crew": ["alice", "bob"], "later": ["bob"]}

        assert not h.orchestrator.apply("Movies", plans, viewers, max_attempts=3)

        assert h.statuses == [("alice", OutcomeStatus.ERROR, "connection reset")]
        assert len(h.client.calls) == 3
        assert h.sleeps == [30.0, 30.0]
        assert h.stats.failed == 1
        assert h.fatal_calls == 1
        assert len(h.reporter.summaries) == 1

    def test_error_keeps_http_status(self, tokens) -> None:
        """The final error outcome carries the last HTTP status."""
        h = Harness(
            FakeMediaClient(MediaRequestError("server error", http_status=500)), tokens
        )

        assert not h.orchestrator.apply(
            "Movies", {"crew": [make_plan()]}, {"crew": ["alice"]}, max_attempts=1
        )

        assert h.audit.outcomes[0].http_status == 500
        assert h.sleeps == []

    def test_dry_run_records_without_calls(self, tokens) -> None:
        """Dry runs record dry_run outcomes and make no network call."""
        h = Harness(FakeMediaClient(200), tokens)

        assert h.orchestrator.apply(
            "Movies",
            {"crew": [make_plan()]},
            {"crew": ["alice", "carol"]},
            dry_run=True,
        )

        assert h.statuses == [
            ("alice", OutcomeStatus.DRY_RUN, None),
            ("carol", OutcomeStatus.SKIPPED, REASON_NO_TOKEN),
        ]
        assert h.client.calls == []
        assert h.stats.processed == 0

    def test_group_without_viewers_is_skipped(self, tokens) -> None:
        """Plans of a group with no resolved viewers produce no outcomes."""
        h = Harness(FakeMediaClient(200), tokens)

        assert h.orchestrator.apply("Movies", {"crew": [make_plan()]}, {"crew": []})

        assert h.audit.outcomes == []
        assert h.reporter.summaries == []

    def test_one_outcome_per_part_group_viewer(self, tokens) -> None:
        """Every (part, group, viewer) triple yields exactly one outcome."""
        h = Harness(
            FakeMediaClient(200, 500, MediaRequestError("x", http_status=403), 200),
            {**tokens, "dave": "dave-token-0004"},
            skip_inaccessible_items=True,
        )
        plans = {"a": [make_plan(1), make_plan(2)], "b": [make_plan(3)]}
        viewers = {"a": ["alice", "carol", "bob"], "b": ["dave", "alice"]}

        assert h.orchestrator.apply("Shows", plans, viewers)

        triples = [(o.plan.part_id, o.group, o.viewer) for o in h.audit.outcomes]
        assert len(triples) == len(set(triples)) == 8
        assert triples[:3] == [(1, "a", "alice"), (1, "a", "carol"), (1, "a", "bob")]


class TestStopRequest:
    """Tests for stopping a run through the stop event."""

    def test_stop_before_viewer_starts_nothing(self, tokens) -> None:
        stop = threading.Event()
        stop.set()
        h = Harness(FakeMediaClient(200), tokens, stop_event=stop)

        with pytest.raises(RunInterruptedError):
            h.orchestrator.apply(
                "Movies", {"crew": [make_plan()]}, {"crew": ["alice", "bob"]}
            )

        assert h.client.calls == []
        assert h.audit.outcomes == []
        assert h.reporter.summaries == []

    def test_stop_during_backoff_records_viewer_once(self, tokens) -> None:
        """A stop requested while waiting to retry ends the run at once."""
        stop = threading.Event()
        h = Harness(
            FakeMediaClient(MediaRequestError("connection reset")),
            tokens,
            stop_event=stop,
            sleep=lambda seconds: stop.set(),
        )

        with pytest.raises(RunInterruptedError):
            h.orchestrator.apply(
                "Movies",
                {"crew": [make_plan(100), make_plan(200)]},
                {"crew": ["alice", "bob"]},
            )

        assert h.client.calls == [("alice", "alice-token-0001", 100)]
        assert h.statuses == [("alice", OutcomeStatus.ERROR, REASON_INTERRUPTED)]
        assert h.stats.failed == 1
        assert h.fatal_calls == 0
        assert [s.part_id for s in h.reporter.summaries] == [100]

    def test_default_sleep_wakes_on_stop(self, tokens) -> None:
        """Without an injected sleep, backoffs wait on the stop event."""
        stop = threading.Event()
        orchestrator = UpdateOrchestrator(
            FakeMediaClient(MediaRequestError("connection reset")),
            DictTokens(tokens),
            RecordingAudit(),
            RecordingReporter(),
            RunStats(),
            retry_delay=600.0,
            pacing_delay=0.0,
            stop_event=stop,
        )
        timer = threading.Timer(0.1, stop.set)
        timer.start()
        try:
            with pytest.raises(RunInterruptedError):
                orchestrator.apply(
                    "Movies", {"crew": [make_plan()]}, {"crew": ["alice"]}
                )
        finally:
            timer.cancel()


class TestLogFields:
    """Tests for the update fields attached to log records."""

    def test_records_carry_viewer_and_part(self, tokens, caplog) -> None:
        h = Harness(FakeMediaClient(MediaRequestError("boom", 502), 200), tokens)
        with caplog.at_level(logging.INFO, logger="defaulter.updater"):
            h.orchestrator.apply(
                "Movies", {"crew": [make_plan(7)]}, {"crew": ["alice"]}
            )

        fields = [
            (r.viewer, r.part_id, getattr(r, "attempt", None), r.levelname)
            for r in caplog.records
            if hasattr(r, "viewer")
        ]
        assert fields == [("alice", 7, 1, "ERROR"), ("alice", 7, None, "INFO")]
