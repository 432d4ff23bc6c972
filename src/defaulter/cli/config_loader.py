"""Configuration loading shared by CLI commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from defaulter.cli.exit_codes import ExitCode
from defaulter.config import (
    ConfigError,
    DefaulterConfig,
    LoggingConfig,
    RunOverrides,
    build_logging_config,
    load_config,
)
from defaulter.logging import configure_logging

logger = logging.getLogger(__name__)


def configure_cli_logging(ctx: click.Context, base: LoggingConfig) -> None:
    """Configure logging from a base config and the global CLI options."""
    options = ctx.find_root().obj or {}
    try:
        logging_config = build_logging_config(
            base,
            level=options.get("log_level"),
            file=options.get("log_file"),
            format="json" if options.get("log_json") else None,
            include_stderr=options.get("include_stderr"),
        )
    except ValueError as e:
        click.echo(f"Error: invalid logging configuration: {e}", err=True)
        sys.exit(ExitCode.CONFIG_ERROR)
    configure_logging(logging_config)


def load_cli_config(
    ctx: click.Context,
    config_path: Path | None,
    overrides: RunOverrides | None = None,
) -> DefaulterConfig:
    """Load the configuration and configure logging from it.

    Exits with ExitCode.CONFIG_ERROR when the configuration is invalid.
    """
    # Until the file is read, log with defaults so config errors are visible.
    configure_cli_logging(ctx, LoggingConfig())
    try:
        config = load_config(config_path, overrides=overrides)
    except ConfigError as e:
        logger.error("%s", e)
        click.echo(f"Error: {e}", err=True)
        sys.exit(ExitCode.CONFIG_ERROR)

    configure_cli_logging(ctx, config.logging)
    return config
