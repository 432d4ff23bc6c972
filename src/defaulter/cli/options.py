"""Click options shared by the run and serve commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from defaulter.config import RunOverrides

F = Callable[..., Any]

_RUN_FLAG_OPTIONS: tuple[Callable[[F], F], ...] = (
    click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Config file (default: $DEFAULTER_CONFIG or ./config.yaml).",
    ),
    click.option(
        "--dry-run/--no-dry-run",
        "dry_run",
        default=None,
        help="Log matches and record dry_run outcomes without updating Plex.",
    ),
    click.option(
        "--skip-inaccessible-items/--no-skip-inaccessible-items",
        "skip_inaccessible_items",
        default=None,
        help="Skip a user/item on HTTP 403 instead of retrying.",
    ),
    click.option(
        "--log-user-summary/--no-log-user-summary",
        "log_user_summary",
        default=None,
        help="Log one human-readable line per part and group.",
    ),
    click.option(
        "--log-json-user-summary/--no-log-json-user-summary",
        "log_json_user_summary",
        default=None,
        help="Log one JSON object per part and group.",
    ),
    click.option(
        "--audit-dir",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Directory for per-run JSON and CSV audit files.",
    ),
)


def run_flag_options(func: F) -> F:
    """Apply the config path and run flag options to a command."""
    for option in reversed(_RUN_FLAG_OPTIONS):
        func = option(func)
    return func


def build_overrides(
    dry_run: bool | None,
    skip_inaccessible_items: bool | None,
    log_user_summary: bool | None,
    log_json_user_summary: bool | None,
    audit_dir: Path | None,
) -> RunOverrides:
    """Collect run flags given on the command line."""
    return RunOverrides(
        dry_run=dry_run,
        skip_inaccessible_items=skip_inaccessible_items,
        log_user_summary=log_user_summary,
        log_json_user_summary=log_json_user_summary,
        audit_dir=audit_dir,
    )
