"""Startup diagnostics for groups and viewer tokens.

Everything here only logs; tokens are never printed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from defaulter.users.groups import get_group_members
from defaulter.users.tokens import TokenStore

logger = logging.getLogger(__name__)


def log_group_digest(
    library_groups: Mapping[str, Sequence[str]],
    groups: Mapping[str, Sequence[str]],
    tokens: TokenStore,
    owner_name: str | None = None,
    warned: set[tuple[str, str]] | None = None,
) -> None:
    """Log one digest line per (library, group) and warn on missing tokens.

    Args:
        library_groups: Library name -> names of groups with rules there.
        groups: Group name -> configured member names.
        tokens: Registered viewer tokens.
        owner_name: Server owner name, excluded from ``$ALL``.
        warned: (group, member) pairs already warned about; updated in place
            so each pair is reported once across libraries.
    """
    warned = warned if warned is not None else set()
    for library, group_names in library_groups.items():
        for group in group_names:
            members = get_group_members(group, groups, tokens, owner_name)
            resolved = [m for m in members if m in tokens]
            missing = [m for m in members if m not in tokens]

            parts = [
                f"Group digest (library='{library}', group='{group}')",
                f"members=[{', '.join(resolved) if resolved else 'none'}]",
                f"tokens resolved {len(resolved)}/{len(members)}",
            ]
            if missing:
                parts.append(f"missing tokens=[{', '.join(missing)}]")
            logger.info("; ".join(parts))

            for member in missing:
                if (group, member) in warned:
                    continue
                warned.add((group, member))
                logger.warning(
                    "no token for user '%s' in group '%s' -> will skip", member, group
                )


def log_owner_safety(
    groups: Mapping[str, Sequence[str]], owner_name: str | None
) -> None:
    """Report whether the owner's own defaults will be changed."""
    if not owner_name:
        return
    containing = [name for name, members in groups.items() if owner_name in members]
    if not containing:
        logger.info(
            "Owner '%s' is not included in any group; "
            "no owner updates will be performed.",
            owner_name,
        )
        return
    logger.warning(
        "Owner '%s' appears in groups: [%s]. Proceeding per config.",
        owner_name,
        ", ".join(containing),
    )


def warn_about_shared_tokens(tokens: TokenStore) -> None:
    """Warn when several viewers are registered with the same token."""
    for viewers in tokens.shared_tokens():
        logger.warning(
            "Users %s share the same Plex token. Plex applies default stream "
            "selections per account, so updates for one profile will impact "
            "the others.",
            ", ".join(viewers),
        )

