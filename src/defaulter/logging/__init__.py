"""Structured logging module for Plex Defaulter.

Provides configurable logging with JSON format support and file rotation.
Includes run context support so lines emitted while a library/group is
being updated are tagged with it.
"""

from defaulter.logging.config import configure_logging
from defaulter.logging.context import (
    RunContextFilter,
    clear_run_context,
    get_run_context,
    run_context,
    set_run_context,
)
from defaulter.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "RunContextFilter",
    "clear_run_context",
    "configure_logging",
    "get_run_context",
    "run_context",
    "set_run_context",
]
