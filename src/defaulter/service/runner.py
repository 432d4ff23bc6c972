"""Run service: partial, clean and dry runs, and webhook processing.

The service owns every piece of per-session state (viewer tokens, library
mapping, run counters, ``updatedAt`` watermarks) and serializes all runs
behind one lock, so no two media server mutations are ever in flight.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from defaulter.audit.writer import AuditWriter
from defaulter.config.models import DefaulterConfig
from defaulter.domain.models import Part, RunStats
from defaulter.logging.context import run_context
from defaulter.plex.client import PlexClient, PlexConnectionError
from defaulter.plex.models import MediaItem
from defaulter.policy.models import GroupRules
from defaulter.policy.resolver import plan_updates
from defaulter.reports.summary import LogSummaryReporter, log_run_summary
from defaulter.service.exceptions import LibraryRefreshError
from defaulter.service.libraries import LibraryRegistry, MappedLibrary
from defaulter.service.webhook import SINGLE_ITEM_TYPES, WebhookEvent
from defaulter.updater.exceptions import FatalRunError, RunInterruptedError
from defaulter.updater.interfaces import MediaClient
from defaulter.updater.orchestrator import UpdateOrchestrator
from defaulter.users.groups import get_group_members
from defaulter.users.tokens import TokenStore

logger = logging.getLogger(__name__)


class RunService:
    """Fetches parts, resolves plans and applies them to viewers."""

    def __init__(
        self,
        config: DefaulterConfig,
        plex: PlexClient,
        media_client: MediaClient,
        tokens: TokenStore,
        audit: AuditWriter,
        *,
        reporter: LogSummaryReporter | None = None,
        stats: RunStats | None = None,
        sleep: Callable[[float], object] | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._config = config
        self._plex = plex
        self._media_client = media_client
        self._tokens = tokens
        self._audit = audit
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._sleep = sleep if sleep is not None else self._stop_event.wait
        self._lock = threading.Lock()
        self._watermarks: dict[str, int] = {}

        self.stats = stats if stats is not None else RunStats()
        self.libraries = LibraryRegistry()
        self.reporter = reporter or LogSummaryReporter(
            text=config.flags.log_user_summary,
            json_format=config.flags.log_json_user_summary,
        )
        self._orchestrator = UpdateOrchestrator(
            media_client,
            tokens,
            audit,
            self.reporter,
            self.stats,
            skip_inaccessible_items=config.flags.skip_inaccessible_items,
            retry_delay=config.retry.retry_delay,
            pacing_delay=config.retry.pacing_delay,
            sleep=self._sleep,
            stop_event=self._stop_event,
        )

    @property
    def watermarks(self) -> dict[str, int]:
        """Highest ``updatedAt`` processed per library (copy)."""
        return dict(self._watermarks)

    @property
    def stop_requested(self) -> bool:
        """True once request_stop() was called."""
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Stop the current run at the next viewer, part or library.

        Safe to call from any thread; pending backoff and pacing waits end
        immediately. Every later run raises RunInterruptedError at once.
        """
        self._stop_event.set()

    def _check_stop(self, library: str | None = None) -> None:
        if self._stop_event.is_set():
            raise RunInterruptedError(library)

    def close(self) -> None:
        """Close the audit files and HTTP clients."""
        self._audit.close()
        self._plex.close()
        close = getattr(self._media_client, "close", None)
        if callable(close):
            close()

    # -- libraries -------------------------------------------------------

    def refresh_libraries(self) -> None:
        """Fetch the server's libraries and map the configured ones.

        Raises:
            LibraryRefreshError: If every attempt fails.
        """
        with self._lock:
            self._refresh_libraries()

    def _refresh_libraries(self) -> None:
        retry = self._config.retry
        attempt = 0
        while True:
            attempt += 1
            try:
                sections = self._plex.get_libraries()
                break
            except PlexConnectionError as e:
                if attempt >= retry.max_attempts:
                    logger.error(
                        "All attempts failed. Verify connection to Plex: %s", e
                    )
                    raise LibraryRefreshError(
                        f"Could not fetch libraries after {attempt} attempts: {e}"
                    ) from e
                logger.error(
                    "Error fetching libraries (attempt %d/%d): %s. "
                    "Retrying in %.1f seconds...",
                    attempt,
                    retry.max_attempts,
                    e,
                    retry.retry_delay,
                )
                self._sleep(retry.retry_delay)
                self._check_stop()

        self.libraries.update(sections, self._config.library_rules)
        logger.info("Fetched and mapped libraries")

    # -- viewers ---------------------------------------------------------

    def resolve_viewers(
        self, library: MappedLibrary, *, check_access: bool = True
    ) -> dict[str, list[str]]:
        """Resolve the viewers of every group with rules for a library.

        Viewers whose token fails the library access check are dropped.
        Viewers without a token are kept so the update records a no_token
        skip for them.
        """
        owner = self._config.plex.owner_name
        viewers: dict[str, list[str]] = {}
        for group in self._config.library_rules.get(library.name, {}):
            members = get_group_members(
                group, self._config.groups, self._tokens.viewers, owner
            )
            allowed = []
            for member in members:
                self._check_stop(library.name)
                token = self._tokens.lookup(member)
                if token is None or not check_access:
                    allowed.append(member)
                    continue
                if self._plex.can_access_library(library.key, token):
                    logger.debug(
                        "User %s of group %s has access to library %s",
                        member,
                        group,
                        library.name,
                    )
                    allowed.append(member)
                else:
                    logger.warning(
                        "User %s of group %s can't access library %s. "
                        "They will be skipped during updates.",
                        member,
                        group,
                        library.name,
                    )
                self._sleep(self._config.retry.pacing_delay)
            viewers[group] = allowed
        return viewers

    # -- runs ------------------------------------------------------------

    def perform_run(self, *, clean: bool = False) -> RunStats:
        """Process items updated since the last run (all items when clean).

        Returns:
            The run counters.

        Raises:
            LibraryRefreshError: If libraries cannot be listed.
            FatalRunError: If a viewer's retry budget is exhausted.
            RunInterruptedError: If request_stop() was called.
        """
        label = "CLEAN" if clean else "PARTIAL"
        with self._lock:
            self._check_stop()
            self._refresh_libraries()
            self.stats.reset()
            logger.info("STARTING %s RUN", label)
            try:
                for name in self._config.library_rules:
                    self._check_stop(name)
                    with run_context(name):
                        self._run_library(name, clean=clean, dry_run=False)
            except RunInterruptedError:
                logger.warning("%s RUN INTERRUPTED", label)
                log_run_summary(self.stats)
                raise
            except FatalRunError:
                log_run_summary(self.stats)
                raise
            log_run_summary(self.stats)
            logger.info("FINISHED %s RUN", label)
        return self.stats

    def perform_dry_run(self) -> RunStats:
        """Resolve plans for every item and record dry_run outcomes.

        No mutation request and no library access check is made.

        Raises:
            RunInterruptedError: If request_stop() was called.
        """
        with self._lock:
            self._check_stop()
            self._refresh_libraries()
            self.stats.reset()
            logger.info("STARTING DRY RUN. NO CHANGES WILL BE MADE.")
            for name in self._config.library_rules:
                self._check_stop(name)
                with run_context(name):
                    self._run_library(name, clean=True, dry_run=True)
            logger.info("DRY RUN COMPLETE.")
        return self.stats

    def _run_library(self, name: str, *, clean: bool, dry_run: bool) -> None:
        logger.info("Processing library: %s", name)
        library = self.libraries.find(name)
        if library is None:
            logger.warning("Library '%s' details are incomplete. Skipping.", name)
            return

        since = 0 if clean else self._watermarks.get(name, 0)
        try:
            items = self._plex.get_library_items(library.key)
        except PlexConnectionError as e:
            logger.error(
                "Error fetching updated media for Library ID %s: %s", library.key, e
            )
            return
        updated = [item for item in items if item.updated_at > since]
        if not updated:
            logger.info("No changes detected in library %s since the last run", name)
            return

        viewers = self.resolve_viewers(library, check_access=not dry_run)
        if not any(viewers.values()):
            logger.warning("No users have access to library %s. Skipping", name)
            return

        rules = self._config.library_rules[name]
        for item in updated:
            self._check_stop(name)
            for part in self._fetch_parts(library, item):
                self._check_stop(name)
                self._apply_parts(library, [part], rules, viewers, dry_run)
                self._sleep(self._config.retry.pacing_delay)

        if not dry_run:
            self._watermarks[name] = max(item.updated_at for item in updated)

    def _fetch_parts(self, library: MappedLibrary, item: MediaItem) -> list[Part]:
        logger.info("Fetching streams for %s '%s'", library.type, item.title)
        if library.type == "show":
            return self._plex.get_show_parts(item.rating_key)
        return [self._plex.get_item_part(item.rating_key)]

    def _apply_parts(
        self,
        library: MappedLibrary,
        parts: list[Part],
        rules: dict[str, GroupRules],
        viewers: dict[str, list[str]],
        dry_run: bool,
    ) -> bool:
        plan_set = plan_updates(parts, rules)
        if not plan_set:
            return False
        ok = self._orchestrator.apply(
            library.name,
            plan_set,
            viewers,
            dry_run=dry_run,
            max_attempts=self._config.retry.max_attempts,
        )
        if not ok:
            part_id = parts[0].part_id if len(parts) == 1 else None
            raise FatalRunError(library.name, part_id)
        return True

    # -- webhook ---------------------------------------------------------

    def process_webhook(self, event: WebhookEvent) -> bool:
        """Apply rules to the item a webhook notified about.

        Returns:
            False when the event's library is not configured.

        Raises:
            FatalRunError: If a viewer's retry budget is exhausted.
            RunInterruptedError: If request_stop() was called.
        """
        with self._lock:
            self._check_stop()
            library = self.libraries.get(event.library_id)
            if library is None:
                logger.info(
                    "Library ID %s not found in filters. Attempting library refresh...",
                    event.library_id,
                )
                self._refresh_libraries()
                library = self.libraries.get(event.library_id)
                if library is None:
                    logger.info(
                        "Library ID %s not found in filters. Ending request",
                        event.library_id,
                    )
                    return False

            with run_context(library.name):
                dry_run = self._config.flags.dry_run
                viewers = self.resolve_viewers(library, check_access=not dry_run)

                if event.type in SINGLE_ITEM_TYPES:
                    parts = [self._plex.get_item_part(event.media_id)]
                elif event.type == "show":
                    parts = self._plex.get_show_parts(event.media_id)
                elif event.type == "season":
                    parts = self._plex.get_season_parts(event.media_id)
                else:
                    logger.info("Ignoring webhook for media type '%s'", event.type)
                    parts = []

                rules = self._config.library_rules.get(library.name, {})
                if not self._apply_parts(library, parts, rules, viewers, dry_run):
                    logger.info("Could not find streams to update. Ending request")
        return True
