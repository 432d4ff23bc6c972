"""Per-session registry of viewer credentials."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from defaulter.core.redaction import mask_token

logger = logging.getLogger(__name__)


class TokenStore:
    """Viewer name -> Plex token, in registration order.

    Owned by one run service; nothing here is process-wide.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}

    def register(self, viewer: str, token: str) -> None:
        """Register or replace a viewer's token. Empty values are ignored."""
        if not viewer or not token:
            return
        if viewer in self._tokens and self._tokens[viewer] != token:
            logger.debug("Replacing token for user '%s' (%s)", viewer, mask_token(token))
        self._tokens[viewer] = token

    def lookup(self, viewer: str) -> str | None:
        """Return the viewer's token, or None when unknown."""
        return self._tokens.get(viewer)

    @property
    def viewers(self) -> list[str]:
        return list(self._tokens)

    def shared_tokens(self) -> list[list[str]]:
        """Groups of viewers registered with the same (stripped) token."""
        by_token: dict[str, list[str]] = {}
        for viewer, token in self._tokens.items():
            normalized = token.strip()
            if normalized:
                by_token.setdefault(normalized, []).append(viewer)
        return [viewers for viewers in by_token.values() if len(viewers) > 1]

    def __contains__(self, viewer: object) -> bool:
        return viewer in self._tokens

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)
