"""Configuration data models.

This module defines the dataclasses the rest of the application consumes.
They are built by ``defaulter.config.loader`` from the validated YAML file,
the environment and CLI overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from defaulter.policy.models import GroupRules


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass(frozen=True)
class PlexConfig:
    """Connection settings for the Plex Media Server and plex.tv."""

    server_url: str
    owner_token: str
    client_identifier: str
    owner_name: str | None = None
    request_timeout: float = 600.0

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ValueError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )


@dataclass(frozen=True)
class RunFlags:
    """Per-run switches resolved as CLI > environment > file > default."""

    dry_run: bool = False
    skip_inaccessible_items: bool = False
    log_user_summary: bool = False
    log_json_user_summary: bool = False
    audit_dir: Path | None = None


@dataclass(frozen=True)
class RetryConfig:
    """Attempt budget and fixed delays for media server calls."""

    max_attempts: int = 10
    retry_delay: float = 30.0
    pacing_delay: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_delay < 0 or self.pacing_delay < 0:
            raise ValueError("retry and pacing delays must not be negative")


@dataclass(frozen=True)
class ScheduleConfig:
    """Which runs to perform at startup and on a schedule."""

    partial_run_on_start: bool = False
    clean_run_on_start: bool = False
    partial_run_cron_expression: str | None = None


@dataclass
class DefaulterConfig:
    """Main configuration container."""

    plex: PlexConfig
    flags: RunFlags = field(default_factory=RunFlags)
    retry: RetryConfig = field(default_factory=RetryConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    # Viewer name -> token for managed (home) users
    managed_users: dict[str, str] = field(default_factory=dict)

    # Group name -> member names in configuration order ("$ALL" allowed)
    groups: dict[str, list[str]] = field(default_factory=dict)

    # Library name -> group name -> rules
    library_rules: dict[str, dict[str, GroupRules]] = field(default_factory=dict)

    port: int = 3184
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be 1-65535, got {self.port}")
