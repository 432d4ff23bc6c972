"""Viewer discovery: build the session's TokenStore."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from defaulter.plex.client import PlexConnectionError
from defaulter.users.groups import referenced_viewers, uses_all_viewers
from defaulter.users.tokens import TokenStore

if TYPE_CHECKING:
    from defaulter.config.models import DefaulterConfig
    from defaulter.plex.client import PlexClient

logger = logging.getLogger(__name__)


def discover_viewers(config: DefaulterConfig, plex: PlexClient) -> TokenStore:
    """Collect the tokens of every viewer the configuration may update.

    Registration order is: the owner (when ``plex_owner_name`` is set),
    shared-server users listed in a group (all of them when a group uses
    ``$ALL``), then managed users. Failing to reach plex.tv is only a
    warning; the caller decides what an empty store means.
    """
    tokens = TokenStore()
    if config.plex.owner_name:
        tokens.register(config.plex.owner_name, config.plex.owner_token)

    wanted = referenced_viewers(config.groups)
    include_all = uses_all_viewers(config.groups)

    try:
        shared = plex.get_shared_users()
    except PlexConnectionError as e:
        logger.warning("Could not fetch users with access to server: %s", e)
        shared = []
    else:
        logger.info("Fetched and stored user details successfully.")

    for user in shared:
        if include_all or user.username in wanted:
            tokens.register(user.username, user.access_token)

    if config.managed_users:
        for viewer, token in config.managed_users.items():
            tokens.register(viewer, token)
        logger.info("Finished processing managed users")

    return tokens
