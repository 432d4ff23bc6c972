"""Custom exceptions for applying stream selections."""

from __future__ import annotations


class UpdateError(Exception):
    """Base exception for update errors."""


class MediaRequestError(UpdateError):
    """Raised by a media client when a mutation request fails.

    Attributes:
        http_status: HTTP status of the failed response, or None for
            transport failures (connection refused, timeout, ...).
    """

    def __init__(self, message: str, http_status: int | None = None) -> None:
        self.http_status = http_status
        super().__init__(message)


class FatalRunError(UpdateError):
    """Raised when the retry budget for a viewer is exhausted.

    The whole run must stop: no further groups, viewers or parts are
    processed once this is raised.
    """

    def __init__(self, library: str, part_id: int | None = None) -> None:
        self.library = library
        self.part_id = part_id
        message = f"Run aborted while updating library '{library}'"
        if part_id is not None:
            message += f" (Part ID {part_id})"
        super().__init__(message)


class RunInterruptedError(UpdateError):
    """Raised when a stop was requested (SIGTERM/SIGINT) during a run.

    Work already recorded stays valid; nothing further is started.
    """

    def __init__(self, library: str | None = None) -> None:
        self.library = library
        message = "Run interrupted by shutdown request"
        if library is not None:
            message += f" while updating library '{library}'"
        super().__init__(message)
