"""CLI module for Plex Defaulter."""

from pathlib import Path

import click


@click.group()
@click.version_option(package_name="plex-defaulter")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Plex Defaulter - keep per-user default audio/subtitle streams in sync."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.lower() if log_level else None
    ctx.obj["log_file"] = log_file
    ctx.obj["log_json"] = log_json
    # Log file given on the command line still echoes to stderr.
    ctx.obj["include_stderr"] = True if log_file is not None else None


# Defer import to avoid circular dependency
def _register_commands() -> None:
    from defaulter.cli.run import run_command
    from defaulter.cli.serve import serve_command

    main.add_command(run_command)
    main.add_command(serve_command)


_register_commands()
