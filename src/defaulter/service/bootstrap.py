"""Construction of a RunService from configuration."""

from __future__ import annotations

import logging
import threading

from defaulter.audit.writer import AuditWriter
from defaulter.config.models import DefaulterConfig
from defaulter.plex.client import PlexClient
from defaulter.plex.user_client import PlexUserClient
from defaulter.service.exceptions import NoViewersError
from defaulter.service.runner import RunService
from defaulter.users.digest import (
    log_group_digest,
    log_owner_safety,
    warn_about_shared_tokens,
)
from defaulter.users.discovery import discover_viewers

logger = logging.getLogger(__name__)


def create_run_service(
    config: DefaulterConfig,
    *,
    plex: PlexClient | None = None,
    media_client: PlexUserClient | None = None,
) -> RunService:
    """Discover viewers, log the startup digest and build the service.

    Args:
        config: Resolved configuration.
        plex: Metadata client (default: built from config).
        media_client: Per-viewer client (default: built from config).

    Raises:
        NoViewersError: If no viewer token could be resolved.
        OSError: If the audit directory cannot be written.
    """
    stop_event = threading.Event()
    plex = plex or PlexClient(
        config.plex,
        pacing_delay=config.retry.pacing_delay,
        sleep=stop_event.wait,
    )
    tokens = discover_viewers(config, plex)
    if not tokens:
        plex.close()
        raise NoViewersError()

    warn_about_shared_tokens(tokens)
    log_group_digest(
        {library: list(groups) for library, groups in config.library_rules.items()},
        config.groups,
        tokens,
        config.plex.owner_name,
    )
    log_owner_safety(config.groups, config.plex.owner_name)

    if config.flags.skip_inaccessible_items:
        logger.info(
            "skipInaccessibleItems enabled: HTTP 403 responses will be skipped "
            "per user/item."
        )

    return RunService(
        config,
        plex,
        media_client or PlexUserClient(config.plex),
        tokens,
        AuditWriter(config.flags.audit_dir),
        stop_event=stop_event,
    )
