"""Plex Media Server and plex.tv clients.

Public API:
- PlexClient: owner-token metadata client
- PlexUserClient: per-viewer "set default streams" client
"""

from defaulter.plex.client import PlexAuthError, PlexClient, PlexConnectionError
from defaulter.plex.models import LibrarySection, MediaItem, SharedUser
from defaulter.plex.parsers import (
    PlexParseError,
    build_item_title,
    parse_part,
    parse_shared_servers,
)
from defaulter.plex.user_client import (
    PlexUserClient,
    build_device_name,
    build_user_headers,
)

__all__ = [
    "LibrarySection",
    "MediaItem",
    "PlexAuthError",
    "PlexClient",
    "PlexConnectionError",
    "PlexParseError",
    "PlexUserClient",
    "SharedUser",
    "build_device_name",
    "build_item_title",
    "build_user_headers",
    "parse_part",
    "parse_shared_servers",
]
