"""Tautulli webhook payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from defaulter.service.exceptions import InvalidWebhookError

SINGLE_ITEM_TYPES = frozenset({"movie", "episode"})


@dataclass(frozen=True)
class WebhookEvent:
    """A "recently added" notification for one library item.

    ``type`` is one of movie, episode, show or season; other types are
    accepted but select nothing.
    """

    type: str
    library_id: str
    media_id: str

    @classmethod
    def from_payload(cls, payload: Any) -> WebhookEvent:
        """Build an event from the decoded JSON body.

        Raises:
            InvalidWebhookError: If type, libraryId or mediaId is missing.
        """
        if not isinstance(payload, dict):
            raise InvalidWebhookError("Error getting request body")
        event_type = payload.get("type")
        library_id = payload.get("libraryId")
        media_id = payload.get("mediaId")
        if not event_type or not library_id or not media_id:
            raise InvalidWebhookError("Error getting request body")
        return cls(
            type=str(event_type), library_id=str(library_id), media_id=str(media_id)
        )
