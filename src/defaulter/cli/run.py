"""CLI run command: one partial, clean or dry run, then exit."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path

import click

from defaulter.cli.config_loader import load_cli_config
from defaulter.cli.exit_codes import ExitCode
from defaulter.cli.options import build_overrides, run_flag_options
from defaulter.plex.client import PlexConnectionError
from defaulter.service import (
    LibraryRefreshError,
    NoViewersError,
    create_run_service,
)
from defaulter.updater.exceptions import FatalRunError

logger = logging.getLogger(__name__)


def _interrupt_on_signal(signum: int, frame: object) -> None:
    """Turn SIGTERM into KeyboardInterrupt so the audit files get closed."""
    logger.warning("Received %s, stopping run", signal.Signals(signum).name)
    raise KeyboardInterrupt


@click.command("run")
@run_flag_options
@click.option(
    "--clean",
    is_flag=True,
    default=False,
    help="Process every item, ignoring what earlier runs already processed.",
)
@click.pass_context
def run_command(
    ctx: click.Context,
    config_path: Path | None,
    dry_run: bool | None,
    skip_inaccessible_items: bool | None,
    log_user_summary: bool | None,
    log_json_user_summary: bool | None,
    audit_dir: Path | None,
    clean: bool,
) -> None:
    """Apply default stream rules to every configured library once.

    Run flags resolve as: CLI flag, then environment (DRY_RUN,
    SKIP_INACCESSIBLE_ITEMS, LOG_USER_SUMMARY, LOG_JSON_USER_SUMMARY,
    AUDIT_DIR), then the config file.

    \b
    Examples:
        defaulter run                       # Partial run
        defaulter run --clean               # Every item
        defaulter run --dry-run             # Show what would change
        defaulter run --audit-dir ./audit   # Write audit files
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

    exit_code = ExitCode.SUCCESS
    previous_handler = signal.signal(signal.SIGTERM, _interrupt_on_signal)
    try:
        if config.flags.dry_run:
            service.perform_dry_run()
        else:
            service.perform_run(clean=clean)
    except FatalRunError as e:
        logger.error("%s", e)
        exit_code = ExitCode.OPERATION_FAILED
    except (LibraryRefreshError, PlexConnectionError) as e:
        logger.error("Run failed: %s", e)
        exit_code = ExitCode.OPERATION_FAILED
    except KeyboardInterrupt:
        logger.warning("Interrupted, stopping run")
        exit_code = ExitCode.INTERRUPTED
    finally:
        signal.signal(signal.SIGTERM, previous_handler)
        service.close()

    sys.exit(exit_code)
