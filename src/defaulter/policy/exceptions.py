"""Custom exceptions for rule handling."""


class PolicyError(Exception):
    """Base class for rule-related errors."""


class RuleConfigurationError(PolicyError):
    """Raised when a rule chain cannot be evaluated as configured.

    Covers override rules nested more than one hop deep and chain values
    that are neither a rule sequence nor "disabled".
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)
