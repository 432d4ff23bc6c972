"""Run context for structured logging.

Provides context propagation using contextvars, enabling automatic
injection of the library and group being updated into log records.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

_library: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "library", default=None
)
_group: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "group", default=None
)


def set_run_context(library: str, group: str | None = None) -> None:
    """Set the current run context.

    Args:
        library: Library name (e.g., "Movies").
        group: Group name (e.g., "subs-lovers"), or None.
    """
    _library.set(library)
    _group.set(group)


def clear_run_context() -> None:
    """Clear the current run context."""
    _library.set(None)
    _group.set(None)


@contextmanager
def run_context(
    library: str, group: str | None = None
) -> Generator[None, None, None]:
    """Context manager tagging log records with a library and group.

    Restores the previous context on exit, so contexts can nest.

    Example:
        with run_context("Movies", "crew"):
            logger.info("Applying plan")  # Tagged [Movies/crew]
    """
    old_library = _library.get()
    old_group = _group.get()
    try:
        set_run_context(library, group)
        yield
    finally:
        _library.set(old_library)
        _group.set(old_group)


def get_run_context() -> tuple[str | None, str | None]:
    """Get current run context as (library, group)."""
    return _library.get(), _group.get()


class RunContextFilter(logging.Filter):
    """Logging filter that injects run context into log records.

    Adds library and group attributes for JSON output and a compact
    run_tag like "[Movies/crew] " for text output.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        library, group = get_run_context()

        record.library = library
        record.group = group

        if library:
            if group:
                record.run_tag = f"[{library}/{group}] "
            else:
                record.run_tag = f"[{library}] "
        else:
            record.run_tag = ""

        return True
