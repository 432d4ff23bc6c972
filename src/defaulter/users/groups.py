"""Group membership resolution."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

ALL_VIEWERS = "$ALL"


def get_group_members(
    group: str,
    groups: Mapping[str, Sequence[str]],
    known_viewers: Iterable[str],
    owner_name: str | None = None,
) -> list[str]:
    """Resolve the members of a group.

    ``$ALL`` expands to every known viewer except the owner, unless the
    owner is also listed explicitly. Duplicates are removed and the order
    is: expanded viewers first, then explicit members in config order.

    Args:
        group: Group name.
        groups: Group name -> configured member names.
        known_viewers: Viewers with a registered token, in registration order.
        owner_name: Name of the server owner, if configured.

    Returns:
        Member names; unknown groups resolve to an empty list.
    """
    configured = list(groups.get(group) or ())
    owner_listed = owner_name is not None and owner_name in configured
    members: dict[str, None] = {}

    if ALL_VIEWERS in configured:
        for viewer in known_viewers:
            if viewer == owner_name and not owner_listed:
                continue
            members[viewer] = None

    for member in configured:
        if member != ALL_VIEWERS:
            members[member] = None

    return list(members)


def referenced_viewers(groups: Mapping[str, Sequence[str]]) -> set[str]:
    """All names listed in any group (``$ALL`` included verbatim)."""
    return {member for members in groups.values() for member in members}


def uses_all_viewers(groups: Mapping[str, Sequence[str]]) -> bool:
    """True when any group lists ``$ALL``."""
    return any(ALL_VIEWERS in members for members in groups.values())
