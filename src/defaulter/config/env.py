"""Environment variable reader with dependency injection support.

This module provides the EnvReader class for reading and parsing environment
variables with type conversion. It accepts an optional env mapping so code
depending on the environment can be tested without touching os.environ.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class EnvReader:
    """Environment variable reader with type conversion.

    Example:
        # Production usage (reads from os.environ)
        reader = EnvReader()
        port = reader.get_int("PORT", 3184)

        # Testing usage (inject custom env)
        reader = EnvReader(env={"PORT": "9000"})
        port = reader.get_int("PORT", 3184)  # Returns 9000
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        """Initialize the environment reader.

        Args:
            env: Optional mapping to use instead of os.environ.
        """
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def get_str(self, var: str, default: str | None = None) -> str | None:
        """Get a string from environment variable, or default if unset/empty."""
        value = self._env.get(var)
        if value is None or value == "":
            return default
        return value

    def get_int(self, var: str, default: int | None = None) -> int | None:
        """Get an integer from environment variable.

        Returns:
            Parsed integer value, or default if not set or invalid.
            Logs a warning if the value is set but cannot be parsed.
        """
        value = self.get_str(var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for %s: %s", var, value)
            return default

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        """Get a boolean from environment variable.

        Recognizes (case-insensitive) "1", "true", "yes", "on" as true and
        "0", "false", "no", "off" as false. Anything else logs a warning and
        yields the default, so an unparseable value never overrides the
        config file.
        """
        value = self.get_str(var)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        logger.warning("Invalid boolean value for %s: %s", var, value)
        return default

    def get_path(self, var: str, default: Path | None = None) -> Path | None:
        """Get a path (tilde-expanded) from environment variable."""
        value = self.get_str(var)
        if value is None:
            return default
        return Path(value).expanduser()
