"""Plex Media Server client for metadata retrieval.

This module provides the owner-token HTTP client used to list libraries,
walk their items, fetch the streams of each media part, discover the users
the server is shared with, and check per-viewer library access.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from defaulter.config.models import PlexConfig
from defaulter.core.redaction import mask_token
from defaulter.domain.models import Part
from defaulter.plex.models import LibrarySection, MediaItem, SharedUser
from defaulter.plex.parsers import (
    UNKNOWN_TITLE,
    PlexParseError,
    as_part_id,
    parse_items,
    parse_libraries,
    parse_part,
    parse_shared_servers,
)

logger = logging.getLogger(__name__)

PLEX_TV_URL = "https://plex.tv"
DEFAULT_PACING_DELAY = 0.1


class PlexConnectionError(Exception):
    """Raised when a request to Plex fails."""


class PlexAuthError(PlexConnectionError):
    """Raised when the owner token is rejected (401)."""


class PlexClient:
    """HTTP client for the Plex Media Server, authenticated as the owner.

    Metadata is always read with the owner token; viewer tokens are only
    used for the library access check.
    """

    def __init__(
        self,
        config: PlexConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        plex_tv_url: str = PLEX_TV_URL,
        pacing_delay: float = DEFAULT_PACING_DELAY,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server URL, owner token and client identifier.
            transport: Optional httpx transport (tests use MockTransport).
            plex_tv_url: Base URL of plex.tv.
            pacing_delay: Seconds to wait between consecutive fetches while
                walking seasons and episodes.
            sleep: Sleep function (injectable for tests).
        """
        self._config = config
        self._transport = transport
        self._plex_tv_url = plex_tv_url.rstrip("/")
        self._pacing_delay = pacing_delay
        self._sleep = sleep
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._config.server_url,
                timeout=self._config.request_timeout,
                headers=self._headers(),
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "X-Plex-Token": self._config.owner_token,
            "Accept": "application/json",
        }

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> PlexClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get_json(self, path: str) -> Any:
        """GET a server path and decode the JSON body.

        Raises:
            PlexAuthError: If the owner token is rejected.
            PlexConnectionError: On transport errors or error statuses.
        """
        client = self._get_client()
        try:
            response = client.get(path)
            if response.status_code == 401:
                raise PlexAuthError("Plex rejected the owner token")
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise PlexConnectionError(f"Timeout requesting {path}: {e}") from e
        except httpx.HTTPStatusError as e:
            raise PlexConnectionError(
                f"{e.response.status_code} - {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise PlexConnectionError(f"No response received for {path}: {e}") from e
        except ValueError as e:
            raise PlexConnectionError(f"Invalid JSON from {path}: {e}") from e

    def get_libraries(self) -> list[LibrarySection]:
        """List all library sections.

        Raises:
            PlexConnectionError: If the request fails.
        """
        return parse_libraries(self._get_json("/library/sections"))

    def get_library_items(self, section_key: str) -> list[MediaItem]:
        """List the top-level items of a library section.

        Raises:
            PlexConnectionError: If the request fails.
        """
        return parse_items(self._get_json(f"/library/sections/{section_key}/all"))

    def get_item_part(self, item_id: int | str) -> Part:
        """Fetch the media part and streams of a movie or episode.

        Failures are logged and degrade to a Part without tracks.
        """
        try:
            payload = self._get_json(f"/library/metadata/{item_id}")
        except PlexConnectionError as e:
            logger.error("Error fetching streams for Item ID %s: %s", item_id, e)
            return Part(
                part_id=as_part_id(item_id), rating_key=item_id, title=UNKNOWN_TITLE
            )
        return parse_part(item_id, payload)

    def get_season_parts(self, season_id: int | str) -> list[Part]:
        """Fetch the parts of every episode of a season, in episode order."""
        try:
            episodes = parse_items(self._get_json(f"/library/metadata/{season_id}/children"))
        except PlexConnectionError as e:
            logger.error("Error fetching episodes for Season ID %s: %s", season_id, e)
            return []
        if not episodes:
            logger.info("No episodes found for Season ID %s", season_id)
            return []

        parts = []
        for episode in episodes:
            logger.debug("Fetching episode '%s' streams", episode.title)
            parts.append(self.get_item_part(episode.rating_key))
            self._sleep(self._pacing_delay)
        return parts

    def get_show_parts(self, show_id: int | str) -> list[Part]:
        """Fetch the parts of every episode of every season of a show."""
        try:
            seasons = parse_items(self._get_json(f"/library/metadata/{show_id}/children"))
        except PlexConnectionError as e:
            logger.error("Error fetching seasons for Show ID %s: %s", show_id, e)
            return []
        if not seasons:
            logger.warning("No seasons found for Show ID %s", show_id)
            return []

        parts: list[Part] = []
        for season in seasons:
            logger.debug("Fetching season '%s' streams", season.title)
            parts.extend(self.get_season_parts(season.rating_key))
            self._sleep(self._pacing_delay)
        return parts

    def get_shared_users(self) -> list[SharedUser]:
        """List plex.tv users the server is shared with, with their tokens.

        Raises:
            PlexConnectionError: If the request fails or the XML is invalid.
        """
        url = (
            f"{self._plex_tv_url}/api/servers/"
            f"{self._config.client_identifier}/shared_servers"
        )
        client = self._get_client()
        try:
            response = client.get(url)
            response.raise_for_status()
            return parse_shared_servers(response.text)
        except httpx.HTTPError as e:
            raise PlexConnectionError(f"Failed to fetch shared users: {e}") from e
        except PlexParseError as e:
            raise PlexConnectionError(str(e)) from e

    def can_access_library(self, section_key: str, token: str) -> bool:
        """Check that a viewer token can read a library section.

        Returns:
            True when the section answers 200 for the token.
        """
        client = self._get_client()
        try:
            response = client.get(
                f"/library/sections/{section_key}",
                headers={"X-Plex-Token": token},
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Library access check failed for token %s: %s", mask_token(token), e
            )
            return False
        if response.status_code != 200:
            logger.debug(
                "Library access check for token %s: HTTP %d",
                mask_token(token),
                response.status_code,
            )
            return False
        return True
