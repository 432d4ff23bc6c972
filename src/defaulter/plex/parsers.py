"""Parsers turning Plex API payloads into domain models.

Plex Media Server answers in JSON when asked to (``Accept:
application/json``); the plex.tv shared servers endpoint only answers in XML.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any

from defaulter.domain.enums import TrackKind
from defaulter.domain.models import Part, Track
from defaulter.plex.models import LibrarySection, MediaItem, SharedUser

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "title unknown"


class PlexParseError(Exception):
    """Raised when a Plex payload cannot be parsed."""


def _container(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        return {}
    container = payload.get("MediaContainer")
    return container if isinstance(container, dict) else {}


def _is_selected(value: Any) -> bool:
    return value is True or value == 1 or value == "1"


def parse_libraries(payload: Any) -> list[LibrarySection]:
    """Parse the ``/library/sections`` response."""
    sections = []
    for raw in _container(payload).get("Directory") or []:
        sections.append(
            LibrarySection(
                key=str(raw.get("key")),
                title=str(raw.get("title", "")),
                type=str(raw.get("type", "")),
            )
        )
    return sections


def parse_items(payload: Any) -> list[MediaItem]:
    """Parse a list of metadata items (section contents or children)."""
    items = []
    for raw in _container(payload).get("Metadata") or []:
        try:
            updated_at = int(raw.get("updatedAt") or 0)
        except (TypeError, ValueError):
            updated_at = 0
        items.append(
            MediaItem(
                rating_key=str(raw.get("ratingKey")),
                title=str(raw.get("title", "")),
                updated_at=updated_at,
            )
        )
    return items


def build_item_title(metadata: dict[str, Any]) -> str:
    """Build a display title, prefixed by show and season for episodes.

    Example: "The Show - Season 1 - Episode 3 - Pilot".
    """
    title = metadata.get("title") or UNKNOWN_TITLE
    if metadata.get("type") == "episode":
        title = f"Episode {metadata.get('index')} - {title}"
    if metadata.get("parentTitle"):
        title = f"{metadata['parentTitle']} - {title}"
    if metadata.get("grandparentTitle"):
        title = f"{metadata['grandparentTitle']} - {title}"
    return title


def parse_track(raw: dict[str, Any]) -> Track | None:
    """Parse a single stream; video and unknown stream types return None."""
    kind = TrackKind.from_stream_type(raw.get("streamType"))
    if kind is None:
        return None
    try:
        track_id = int(raw["id"])
    except (KeyError, TypeError, ValueError):
        logger.debug("Ignoring stream without a valid id: %r", raw.get("id"))
        return None
    return Track(
        id=track_id,
        kind=kind,
        display_title=raw.get("displayTitle"),
        extended_display_title=raw.get("extendedDisplayTitle"),
        language=raw.get("language"),
        codec=raw.get("codec"),
        selected=_is_selected(raw.get("selected")),
        attributes=dict(raw),
    )


def parse_part(item_id: int | str, payload: Any) -> Part:
    """Parse ``/library/metadata/<id>`` into the item's first media part.

    Items with an unexpected media structure become a Part without tracks,
    which the resolver skips.
    """
    metadata_list = _container(payload).get("Metadata") or []
    metadata = metadata_list[0] if metadata_list else {}
    title = build_item_title(metadata) if metadata else UNKNOWN_TITLE
    rating_key = metadata.get("ratingKey") or item_id

    try:
        raw_part = metadata["Media"][0]["Part"][0]
    except (KeyError, IndexError, TypeError):
        raw_part = None

    if not raw_part or not raw_part.get("id") or not raw_part.get("Stream"):
        logger.warning(
            "Item ID %s '%s' has invalid media structure. Skipping.", item_id, title
        )
        return Part(part_id=as_part_id(item_id), rating_key=rating_key, title=title)

    tracks = tuple(
        track
        for track in (parse_track(raw) for raw in raw_part["Stream"])
        if track is not None
    )
    return Part(
        part_id=as_part_id(raw_part["id"]),
        rating_key=rating_key,
        title=title,
        tracks=tracks,
        stream_count=len(raw_part["Stream"]),
    )


def as_part_id(value: int | str) -> int:
    """Coerce a part or item id to int, 0 when it is not numeric."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_shared_servers(xml_text: str) -> list[SharedUser]:
    """Parse the plex.tv ``shared_servers`` XML into users and tokens.

    Raises:
        PlexParseError: If the document is not valid XML.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise PlexParseError(f"Error parsing XML: {e}") from e

    users = []
    for server in root.iter("SharedServer"):
        username = server.get("username")
        token = server.get("accessToken")
        if username and token:
            users.append(SharedUser(username=username, access_token=token))
    return users
