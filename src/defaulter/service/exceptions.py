"""Custom exceptions for the run service."""


class ServiceError(Exception):
    """Base exception for run service errors."""


class NoViewersError(ServiceError):
    """Raised at startup when no viewer token could be resolved."""

    def __init__(self) -> None:
        super().__init__("No users with access to libraries detected")


class LibraryRefreshError(ServiceError):
    """Raised when the library list cannot be fetched within the retry budget."""


class InvalidWebhookError(ServiceError):
    """Raised when a webhook body lacks type, libraryId or mediaId."""
