"""Unit tests for the run service."""

import logging
import threading
import time
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from factories import FakeMediaClient, RecordingAudit, make_part, make_track

from defaulter.config.models import DefaulterConfig, RunFlags
from defaulter.domain.enums import OutcomeStatus, TrackKind
from defaulter.plex.client import PlexConnectionError
from defaulter.plex.models import LibrarySection, MediaItem
from defaulter.policy.models import DISABLED, GroupRules
from defaulter.service.exceptions import LibraryRefreshError
from defaulter.service.runner import RunService
from defaulter.service.webhook import WebhookEvent
from defaulter.updater.exceptions import (
    FatalRunError,
    MediaRequestError,
    RunInterruptedError,
)
from defaulter.users.tokens import TokenStore


def two_track_part(key):
    return make_part(
        int(key),
        make_track(1, language="English"),
        make_track(2, TrackKind.SUBTITLE, language="English", selected=True),
        title=f"Item {key}",
        rating_key=int(key),
    )


@pytest.fixture
def config(base_config: DefaulterConfig) -> DefaulterConfig:
    base_config.groups = {"crew": ["alice", "bob"]}
    base_config.library_rules = {"Movies": {"crew": GroupRules(subtitles=DISABLED)}}
    return base_config


@pytest.fixture
def plex() -> MagicMock:
    plex = MagicMock()
    plex.get_libraries.return_value = [
        LibrarySection("1", "movies", "movie"),
        LibrarySection("2", "TV", "show"),
    ]
    plex.get_library_items.return_value = [
        MediaItem("10", "Heat", updated_at=100),
        MediaItem("11", "Ronin", updated_at=200),
    ]
    plex.get_item_part.side_effect = two_track_part
    plex.get_show_parts.return_value = [two_track_part(30), two_track_part(31)]
    plex.get_season_parts.return_value = [two_track_part(40)]
    plex.can_access_library.return_value = True
    return plex


@pytest.fixture
def tokens() -> TokenStore:
    store = TokenStore()
    store.register("alice", "alice-token-0001")
    store.register("bob", "bob-token-0002")
    return store


class Env:
    """RunService wired to recording collaborators."""

    def __init__(self, config, plex, tokens, client=None) -> None:
        self.client = client or FakeMediaClient(200)
        self.audit = RecordingAudit()
        self.sleeps: list[float] = []
        self.service = RunService(
            config, plex, self.client, tokens, self.audit, sleep=self.sleeps.append
        )

    @property
    def outcomes(self) -> list[tuple[int, str, OutcomeStatus]]:
        return [(o.plan.part_id, o.viewer, o.status) for o in self.audit.outcomes]


@pytest.fixture
def env(config, plex, tokens) -> Env:
    return Env(config, plex, tokens)


class TestPerformRun:
    """Tests for partial and clean runs."""

    def test_partial_run_updates_every_viewer(self, env: Env, plex) -> None:
        """Each updated item is applied to each viewer in order."""
        stats = env.service.perform_run()

        assert env.client.calls == [
            ("alice", "alice-token-0001", 10),
            ("bob", "bob-token-0002", 10),
            ("alice", "alice-token-0001", 11),
            ("bob", "bob-token-0002", 11),
        ]
        assert stats.succeeded == 4
        assert env.service.watermarks == {"Movies": 200}
        plex.get_library_items.assert_called_with("1")

    def test_second_partial_run_skips_unchanged(self, env: Env, caplog) -> None:
        """Items at or below the watermark are not processed again."""
        env.service.perform_run()
        env.client.calls.clear()

        with caplog.at_level(logging.INFO):
            env.service.perform_run()

        assert env.client.calls == []
        assert "No changes detected in library Movies" in caplog.text

    def test_clean_run_ignores_watermark(self, env: Env) -> None:
        """Clean runs process every item."""
        env.service.perform_run()
        env.client.calls.clear()

        env.service.perform_run(clean=True)

        assert len(env.client.calls) == 4

    def test_stats_reset_between_runs(self, env: Env) -> None:
        env.service.perform_run()
        stats = env.service.perform_run(clean=True)
        assert stats.processed == 4

    def test_inaccessible_viewer_dropped(self, env: Env, plex, caplog) -> None:
        """Viewers failing the access check are not updated."""
        plex.can_access_library.side_effect = (
            lambda key, token: token != "bob-token-0002"
        )

        env.service.perform_run()

        assert {viewer for viewer, _, _ in env.client.calls} == {"alice"}
        assert "User bob of group crew can't access library Movies" in caplog.text

    def test_viewer_without_token_skipped(self, env: Env, config) -> None:
        """Group members without a token get a no_token outcome."""
        config.groups["crew"].append("carol")

        env.service.perform_run()

        skipped = [o for o in env.audit.outcomes if o.viewer == "carol"]
        assert [o.reason for o in skipped] == ["no_token", "no_token"]

    def test_no_accessible_viewers(self, env: Env, plex, caplog) -> None:
        plex.can_access_library.return_value = False
        env.service.perform_run()
        assert env.client.calls == []
        assert "No users have access to library Movies" in caplog.text

    def test_missing_library_skipped(self, env: Env, plex, caplog) -> None:
        """A configured library absent on the server is skipped."""
        plex.get_libraries.return_value = []
        env.service.perform_run()
        assert env.client.calls == []
        assert "Library 'Movies' not found in Plex response" in caplog.text

    def test_show_library_walks_episodes(self, env: Env, config, plex) -> None:
        """Show libraries fetch every episode part."""
        config.library_rules = {"TV": {"crew": GroupRules(subtitles=DISABLED)}}
        plex.get_library_items.return_value = [MediaItem("3", "Show", updated_at=5)]

        env.service.perform_run()

        plex.get_show_parts.assert_called_once_with("3")
        assert [part for _, _, part in env.client.calls] == [30, 30, 31, 31]

    def test_fatal_abort_stops_run(self, config, plex, tokens, caplog) -> None:
        """Exhausted retries stop all remaining work."""
        caplog.set_level(logging.INFO)
        env = Env(config, plex, tokens, FakeMediaClient(RuntimeError("boom")))

        with pytest.raises(FatalRunError) as exc_info:
            env.service.perform_run()

        assert exc_info.value.part_id == 10
        assert len(env.client.calls) == config.retry.max_attempts
        assert env.outcomes == [(10, "alice", OutcomeStatus.ERROR)]
        plex.get_item_part.assert_called_once()
        assert "Run summary: processed=1, succeeded=0, failed=1" in caplog.text
        assert env.service.watermarks == {}


class TestPerformDryRun:
    """Tests for dry runs."""

    def test_dry_run_makes_no_changes(self, env: Env, plex) -> None:
        """Dry runs record dry_run outcomes without access checks or calls."""
        env.service.perform_dry_run()

        assert env.client.calls == []
        plex.can_access_library.assert_not_called()
        assert {status for _, _, status in env.outcomes} == {OutcomeStatus.DRY_RUN}
        assert len(env.outcomes) == 4
        assert env.service.watermarks == {}


class TestRefreshLibraries:
    """Tests for refresh_libraries()."""

    def test_retries_then_succeeds(self, env: Env, plex) -> None:
        plex.get_libraries.side_effect = [
            PlexConnectionError("down"),
            [LibrarySection("1", "Movies", "movie")],
        ]
        env.service.refresh_libraries()
        assert len(env.service.libraries) == 1
        assert env.sleeps == [0]

    def test_gives_up(self, env: Env, plex, config) -> None:
        plex.get_libraries.side_effect = PlexConnectionError("down")
        with pytest.raises(LibraryRefreshError):
            env.service.refresh_libraries()
        assert plex.get_libraries.call_count == config.retry.max_attempts


class TestProcessWebhook:
    """Tests for process_webhook()."""

    def test_movie_event(self, env: Env, plex) -> None:
        """A movie event updates just that item."""
        env.service.refresh_libraries()

        assert env.service.process_webhook(WebhookEvent("movie", "1", "77"))

        plex.get_item_part.assert_called_once_with("77")
        assert [part for _, _, part in env.client.calls] == [77, 77]

    def test_season_event(self, env: Env, config, plex) -> None:
        config.library_rules = {"TV": {"crew": GroupRules(subtitles=DISABLED)}}
        env.service.refresh_libraries()

        assert env.service.process_webhook(WebhookEvent("season", "2", "4"))

        plex.get_season_parts.assert_called_once_with("4")
        assert [part for _, _, part in env.client.calls] == [40, 40]

    def test_unknown_library_refreshes_once(self, env: Env, plex) -> None:
        """Unknown library ids trigger one refresh, then are ignored."""
        assert not env.service.process_webhook(WebhookEvent("movie", "9", "77"))
        assert plex.get_libraries.call_count == 1
        assert env.client.calls == []

    def test_webhook_dry_run(self, env: Env, config) -> None:
        """Webhooks honor the dry_run flag."""
        config.flags = RunFlags(dry_run=True)
        env.service.refresh_libraries()

        env.service.process_webhook(WebhookEvent("episode", "1", "5"))

        assert env.client.calls == []
        assert {status for _, _, status in env.outcomes} == {OutcomeStatus.DRY_RUN}

    def test_nothing_to_update(self, env: Env, plex, caplog) -> None:
        plex.get_item_part.side_effect = lambda key: make_part(int(key))
        env.service.refresh_libraries()
        with caplog.at_level(logging.INFO):
            assert env.service.process_webhook(WebhookEvent("movie", "1", "5"))
        assert "Could not find streams to update" in caplog.text


class TestClose:
    """Tests for close()."""

    def test_closes_collaborators(self, config, plex, tokens) -> None:
        client = MagicMock()
        audit = MagicMock()
        service = RunService(config, plex, client, tokens, audit)
        service.close()
        audit.close.assert_called_once()
        plex.close.assert_called_once()
        client.close.assert_called_once()


class TestStopRequest:
    """Tests for request_stop() during and between runs."""

    def test_stop_wakes_retry_backoff(self, config, plex, tokens) -> None:
        """A stop during a long backoff ends the run without further calls."""
        config.retry = replace(config.retry, retry_delay=600.0)
        client = FakeMediaClient(MediaRequestError("connection reset"))
        audit = RecordingAudit()
        service = RunService(config, plex, client, tokens, audit)
        timer = threading.Timer(0.2, service.request_stop)

        started = time.monotonic()
        timer.start()
        try:
            with pytest.raises(RunInterruptedError):
                service.perform_run()
        finally:
            timer.cancel()

        assert time.monotonic() - started < 5.0
        assert client.calls == [("alice", "alice-token-0001", 10)]
        assert [(o.viewer, o.status) for o in audit.outcomes] == [
            ("alice", OutcomeStatus.ERROR)
        ]
        assert service.watermarks == {}

    def test_interrupted_run_logs_summary(self, config, plex, tokens, caplog) -> None:
        stop = threading.Event()
        service = RunService(
            config,
            plex,
            FakeMediaClient(200),
            tokens,
            RecordingAudit(),
            sleep=lambda seconds: stop.set(),
            stop_event=stop,
        )
        with caplog.at_level(logging.INFO), pytest.raises(RunInterruptedError):
            service.perform_run()
        assert "PARTIAL RUN INTERRUPTED" in caplog.text
        assert "Run summary" in caplog.text

    def test_runs_refused_after_stop(self, env: Env, plex) -> None:
        env.service.request_stop()
        assert env.service.stop_requested

        with pytest.raises(RunInterruptedError):
            env.service.perform_run()
        with pytest.raises(RunInterruptedError):
            env.service.perform_dry_run()
        with pytest.raises(RunInterruptedError):
            env.service.process_webhook(WebhookEvent("movie", "1", "10"))

        plex.get_libraries.assert_not_called()
        assert env.client.calls == []
