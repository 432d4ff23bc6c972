"""CLI serve command for daemon mode.

This module provides the `defaulter serve` command that listens for
Tautulli webhooks, performs the configured startup run and schedules
partial runs.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from defaulter.cli.config_loader import load_cli_config
from defaulter.cli.exit_codes import ExitCode
from defaulter.cli.options import build_overrides, run_flag_options
from defaulter.plex.client import PlexConnectionError
from defaulter.service import NoViewersError, ServiceError, create_run_service
from defaulter.updater.exceptions import FatalRunError, RunInterruptedError

if TYPE_CHECKING:
    from aiohttp import web

    from defaulter.config.models import DefaulterConfig
    from defaulter.server.lifecycle import DaemonLifecycle
    from defaulter.server.scheduler import PartialRunScheduler
    from defaulter.service.runner import RunService

logger = logging.getLogger(__name__)

DEFAULT_BIND = "0.0.0.0"  # nosec B104 - webhook listener inside a container


async def _perform_startup_run(
    app: web.Application, config: DefaulterConfig, service: RunService
) -> bool:
    """Perform the run selected by configuration before scheduling starts.

    Returns:
        False when the daemon must shut down.
    """
    from defaulter.server.app import run_guarded

    lifecycle: DaemonLifecycle = app["lifecycle"]
    shutdown_event: asyncio.Event = app["shutdown_event"]
    try:
        if config.flags.dry_run:
            await run_guarded(app, service.perform_dry_run)
        elif config.schedule.partial_run_on_start:
            await run_guarded(app, service.perform_run)
        elif config.schedule.clean_run_on_start:
            await run_guarded(app, lambda: service.perform_run(clean=True))
        else:
            await run_guarded(app, service.refresh_libraries)
    except (FatalRunError, RunInterruptedError):
        return False
    except (ServiceError, PlexConnectionError) as e:
        logger.error("Error initializing the application: %s", e)
        lifecycle.initiate_shutdown(fatal=True)
        shutdown_event.set()
        return False
    return True


def _create_scheduler(
    app: web.Application, config: DefaulterConfig, service: RunService
) -> PartialRunScheduler | None:
    """Create the partial run scheduler, or None when not configured."""
    from defaulter.server.app import run_guarded
    from defaulter.server.scheduler import PartialRunScheduler

    expression = config.schedule.partial_run_cron_expression
    if config.flags.dry_run or not expression:
        return None

    scheduler: PartialRunScheduler | None = None

    async def scheduled_partial_run() -> None:
        try:
            await run_guarded(app, service.perform_run)
        except (FatalRunError, RunInterruptedError):
            if scheduler is not None:
                scheduler.stop()
        except (ServiceError, PlexConnectionError) as e:
            logger.error("Scheduled partial run failed: %s", e)

    scheduler = PartialRunScheduler(expression, scheduled_partial_run)
    return scheduler


async def run_server(
    config: DefaulterConfig,
    service: RunService,
    bind: str,
    port: int,
) -> int:
    """Run the daemon server.

    Args:
        config: Resolved configuration.
        service: Run service shared by webhook, startup and scheduled runs.
        bind: Address to bind to.
        port: Port to bind to.

    Returns:
        Exit code: OPERATION_FAILED after an aborted run, INTERRUPTED after
        SIGTERM/SIGINT, 0 otherwise.
    """
    from aiohttp import web

    from defaulter.server.app import create_app
    from defaulter.server.lifecycle import DaemonLifecycle
    from defaulter.server.signals import (
        remove_signal_handlers,
        setup_signal_handlers,
    )

    lifecycle = DaemonLifecycle()
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    setup_signal_handlers(
        loop, lifecycle, shutdown_event, on_signal=service.request_stop
    )

    app = create_app(service, lifecycle, shutdown_event)
    runner = web.AppRunner(app)
    await runner.setup()

    scheduler: PartialRunScheduler | None = None
    scheduler_task: asyncio.Task[None] | None = None
    try:
        site = web.TCPSite(runner, bind, port)
        await site.start()
        logger.info("Server is running on port %d (PID %d)", port, os.getpid())
        logger.info("Webhook endpoint: http://%s:%d/webhook", bind, port)

        if await _perform_startup_run(app, config, service):
            scheduler = _create_scheduler(app, config, service)
            if scheduler is not None:
                scheduler_task = asyncio.create_task(scheduler.run())

        await shutdown_event.wait()
        logger.info("Shutdown initiated")

    except OSError as e:
        if e.errno == 98:
            logger.error("Port %d is already in use", port)
        else:
            logger.error("Server error: %s", e)
        return ExitCode.GENERAL_ERROR
    finally:
        service.request_stop()
        if scheduler is not None:
            scheduler.stop()
        if scheduler_task is not None:
            try:
                await asyncio.wait_for(scheduler_task, timeout=lifecycle.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("Scheduled run did not stop in time, cancelling")
                scheduler_task.cancel()
        remove_signal_handlers(loop)
        await runner.cleanup()
        logger.info("Plex Defaulter stopped")

    if lifecycle.is_fatal:
        return ExitCode.OPERATION_FAILED
    if lifecycle.is_interrupted:
        return ExitCode.INTERRUPTED
    return ExitCode.SUCCESS


@click.command("serve")
@run_flag_options
@click.option(
    "--bind",
    type=str,
    default=DEFAULT_BIND,
    show_default=True,
    help="Address to bind the webhook listener to.",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to listen on (default: $PORT, config 'port', or 3184).",
)
@click.pass_context
def serve_command(
    ctx: click.Context,
    config_path: Path | None,
    dry_run: bool | None,
    skip_inaccessible_items: bool | None,
    log_user_summary: bool | None,
    log_json_user_summary: bool | None,
    audit_dir: Path | None,
    bind: str,
    port: int | None,
) -> None:
    """Run Plex Defaulter as a long-lived service.

    Discovers users, performs the startup run selected by the config
    (dry_run, partial_run_on_start or clean_run_on_start), then listens for
    Tautulli webhooks on POST /webhook and performs partial runs on
    partial_run_cron_expression. Stops on SIGTERM or SIGINT.

    \b
    Examples:
        defaulter serve                      # Defaults from config.yaml
        defaulter serve --port 9000          # Custom port
        defaulter serve --config /config/config.yaml
    """
    overrides = build_overrides(
        dry_run,
        skip_inaccessible_items,
        log_user_summary,
        log_json_user_summary,
        audit_dir,
    )
    config = load_cli_config(ctx, config_path, overrides)

    try:
        service = create_run_service(config)
    except NoViewersError as e:
        logger.error("Error initializing the application: %s", e)
        sys.exit(ExitCode.NO_VIEWERS)
    except OSError as e:
        logger.error("Cannot open audit files: %s", e)
        sys.exit(ExitCode.GENERAL_ERROR)

    try:
        exit_code = asyncio.run(
            run_server(config, service, bind, port if port is not None else config.port)
        )
    except KeyboardInterrupt:
        exit_code = ExitCode.INTERRUPTED
    finally:
        service.close()

    sys.exit(exit_code)
