"""Viewers, their tokens and group membership.

Public API:
- TokenStore: per-session viewer -> token registry
- discover_viewers: build a TokenStore from config and plex.tv
- get_group_members: resolve a group's members ($ALL aware)
- log_group_digest / log_owner_safety / warn_about_shared_tokens
"""

from defaulter.users.digest import (
    log_group_digest,
    log_owner_safety,
    warn_about_shared_tokens,
)
from defaulter.users.discovery import discover_viewers
from defaulter.users.groups import (
    ALL_VIEWERS,
    get_group_members,
    referenced_viewers,
    uses_all_viewers,
)
from defaulter.users.tokens import TokenStore

__all__ = [
    "ALL_VIEWERS",
    "TokenStore",
    "discover_viewers",
    "get_group_members",
    "log_group_digest",
    "log_owner_safety",
    "referenced_viewers",
    "uses_all_viewers",
    "warn_about_shared_tokens",
]
