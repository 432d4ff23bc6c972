"""HTTP application for daemon mode.

This module provides the aiohttp Application with the Tautulli webhook
endpoint and a health check endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from aiohttp import web

from defaulter import __version__
from defaulter.plex.client import PlexConnectionError
from defaulter.service.exceptions import InvalidWebhookError, ServiceError
from defaulter.service.webhook import WebhookEvent
from defaulter.updater.exceptions import FatalRunError, RunInterruptedError

if TYPE_CHECKING:
    from defaulter.server.lifecycle import DaemonLifecycle
    from defaulter.service.runner import RunService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class HealthStatus:
    """Health check response payload."""

    status: str
    """Overall status: 'healthy' or 'unhealthy'."""

    uptime_seconds: float
    """Seconds since daemon startup."""

    version: str
    """Plex Defaulter version string."""

    shutting_down: bool = False
    """True if shutdown is in progress."""

    libraries: int = 0
    """Number of configured libraries mapped to server sections."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


async def run_guarded(app: web.Application, func: Callable[..., T], *args: Any) -> T:
    """Run a blocking service call in a worker thread.

    A FatalRunError requests a fatal shutdown of the daemon before being
    re-raised, so no further work starts.
    """
    try:
        return await asyncio.to_thread(func, *args)
    except FatalRunError:
        lifecycle: DaemonLifecycle | None = app.get("lifecycle")
        shutdown_event: asyncio.Event | None = app.get("shutdown_event")
        logger.error("Run aborted after exhausting retries. Shutting down.")
        if lifecycle is not None:
            lifecycle.initiate_shutdown(fatal=True)
        if shutdown_event is not None:
            shutdown_event.set()
        raise


def create_app(
    service: RunService,
    lifecycle: DaemonLifecycle | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> web.Application:
    """Create and configure the aiohttp Application.

    Args:
        service: Run service processing webhook events.
        lifecycle: Daemon lifecycle for health reporting and shutdown.
        shutdown_event: Event set to stop the daemon on fatal errors.

    Returns:
        Configured aiohttp Application instance.
    """
    app = web.Application()
    app["service"] = service
    app["lifecycle"] = lifecycle
    app["shutdown_event"] = shutdown_event

    app.router.add_post("/webhook", webhook_handler)
    app.router.add_get("/health", health_handler)
    return app


async def webhook_handler(request: web.Request) -> web.Response:
    """Handle POST /webhook requests from Tautulli.

    Expects a JSON body ``{"type", "libraryId", "mediaId"}``.

    Returns:
        200 when processed or not relevant, 503 while shutting down,
        500 on invalid bodies and processing errors.
    """
    lifecycle: DaemonLifecycle | None = request.app.get("lifecycle")
    if lifecycle is not None and lifecycle.is_shutting_down:
        return web.Response(status=503, text="Shutting down")

    service: RunService = request.app["service"]
    logger.info("Tautulli webhook received. Processing...")
    try:
        try:
            payload = await request.json()
        except ValueError as e:
            raise InvalidWebhookError("Error getting request body") from e
        event = WebhookEvent.from_payload(payload)
        processed = await run_guarded(request.app, service.process_webhook, event)
    except RunInterruptedError as e:
        logger.warning("Webhook processing stopped: %s", e)
        return web.Response(status=503, text="Shutting down")
    except (ServiceError, PlexConnectionError, FatalRunError) as e:
        logger.error("Error processing webhook: %s", e)
        return web.Response(status=500, text="Error processing webhook")

    if not processed:
        return web.Response(status=200, text="Event not relevant")
    logger.info("Tautulli webhook finished")
    return web.Response(status=200, text="Webhook received and processed.")


async def health_handler(request: web.Request) -> web.Response:
    """Handle GET /health requests.

    Returns:
        200 with HealthStatus JSON, 503 once shutdown has started.
    """
    lifecycle: DaemonLifecycle | None = request.app.get("lifecycle")
    service: RunService = request.app["service"]

    shutting_down = lifecycle.is_shutting_down if lifecycle else False
    uptime = lifecycle.uptime_seconds if lifecycle else 0.0

    health = HealthStatus(
        status="unhealthy" if shutting_down else "healthy",
        uptime_seconds=round(uptime, 1),
        version=__version__,
        shutting_down=shutting_down,
        libraries=len(service.libraries),
    )
    return web.json_response(health.to_dict(), status=503 if shutting_down else 200)
