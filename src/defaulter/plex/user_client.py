"""Per-viewer Plex client for applying default stream selections.

Each request carries the viewer's own token, never the owner's, so Plex
stores the selection on the viewer's account.
"""

from __future__ import annotations

import logging

import httpx

from defaulter.config.models import PlexConfig
from defaulter.domain.models import UpdatePlan
from defaulter.updater.exceptions import MediaRequestError

logger = logging.getLogger(__name__)

DEVICE_NAME_PREFIX = "Defaulter"


def build_device_name(viewer: str | None, prefix: str = DEVICE_NAME_PREFIX) -> str:
    """Device label shown in the viewer's Plex devices, e.g. "Defaulter/alice"."""
    return f"{prefix}/{viewer or 'unknown'}"


def build_user_headers(
    token: str,
    viewer: str | None,
    client_identifier: str,
    device_name_prefix: str = DEVICE_NAME_PREFIX,
) -> dict[str, str]:
    """Build the request headers identifying a viewer.

    Raises:
        ValueError: If token is empty.
    """
    if not token:
        raise ValueError("token is required to build headers")
    headers = {
        "X-Plex-Token": token,
        "X-Plex-Client-Identifier": client_identifier,
        "X-Plex-Device-Name": build_device_name(viewer, device_name_prefix),
    }
    if viewer:
        headers["X-Plex-Username"] = viewer
    return headers


class PlexUserClient:
    """Sends "set default streams" requests on behalf of viewers."""

    def __init__(
        self,
        config: PlexConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        device_name_prefix: str = DEVICE_NAME_PREFIX,
    ) -> None:
        self._config = config
        self._transport = transport
        self._device_name_prefix = device_name_prefix
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        # No default token: every request sets the viewer's own headers.
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._config.server_url,
                timeout=self._config.request_timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def apply(self, viewer: str, token: str, plan: UpdatePlan) -> int:
        """Set the viewer's default audio/subtitle streams for a part.

        Args:
            viewer: Viewer name, used for the device label.
            token: The viewer's own token.
            plan: Selections to apply.

        Returns:
            HTTP status code of a non-error response.

        Raises:
            MediaRequestError: On transport failure (http_status None) or an
                error status (http_status set).
        """
        headers = build_user_headers(
            token, viewer, self._config.client_identifier, self._device_name_prefix
        )
        try:
            response = self._get_client().post(
                f"/library/parts/{plan.part_id}",
                params=plan.query_params(),
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise MediaRequestError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise MediaRequestError(f"No response received: {e}") from e

        if response.is_error:
            raise MediaRequestError(
                f"Request failed with status code {response.status_code}",
                http_status=response.status_code,
            )
        return response.status_code
