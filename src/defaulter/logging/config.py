"""Handler setup for Plex Defaulter logging.

One formatter serves every handler: text lines tagged ``[library/group]``
or JSON entries. The rotating log file and stderr share the run-context
filter. HTTP client loggers are held at WARNING or above so per-viewer
update lines stay readable at DEBUG.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from defaulter.logging.context import RunContextFilter
from defaulter.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from defaulter.config.models import LoggingConfig

TEXT_FORMAT = "%(asctime)s - %(run_tag)s%(name)s - %(levelname)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

HTTP_LOGGERS = ("httpx", "httpcore", "aiohttp.access")


def build_formatter(log_format: str) -> logging.Formatter:
    """Return the formatter for ``text`` or ``json`` output."""
    if log_format.lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def _open_log_file(config: LoggingConfig) -> logging.Handler | None:
    path = Path(config.file).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Could not open log file {path}: {e}\n")
        return None


def configure_logging(config: LoggingConfig) -> None:
    """Replace the root handlers according to ``config``.

    Writes to the log file when one is configured and can be opened, and
    to stderr when ``include_stderr`` is set or no file is in use.
    """
    level = logging.getLevelName(config.level.upper())

    handlers: list[logging.Handler] = []
    if config.file:
        file_handler = _open_log_file(config)
        if file_handler is not None:
            handlers.append(file_handler)
    if config.include_stderr or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = build_formatter(config.format)
    context_filter = RunContextFilter()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    http_level = max(level, logging.WARNING)
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
