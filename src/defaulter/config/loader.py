"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed as RunOverrides)
2. Environment variables
3. Config file (./config.yaml by default)
4. Default values

Environment variables:
- DEFAULTER_CONFIG: Path to config file
- DRY_RUN: Log matches without updating Plex
- SKIP_INACCESSIBLE_ITEMS: Treat HTTP 403 on an item as a skip
- LOG_USER_SUMMARY: Log one human-readable line per part/group
- LOG_JSON_USER_SUMMARY: Log one JSON object per part/group
- AUDIT_DIR: Directory for per-run audit files
- PORT: Port for the webhook server
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from defaulter.config.env import EnvReader
from defaulter.config.models import (
    DefaulterConfig,
    LoggingConfig,
    PlexConfig,
    RetryConfig,
    RunFlags,
    ScheduleConfig,
)
from defaulter.policy.loader import GroupFiltersModel, build_library_rules

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("./config.yaml")


class ConfigError(Exception):
    """Error loading or validating the configuration file."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class LoggingModel(BaseModel):
    """Pydantic model for the ``logging`` section."""

    model_config = ConfigDict(extra="forbid")

    level: Literal["debug", "info", "warning", "error"] = "info"
    file: str | None = None
    format: Literal["text", "json"] = "text"
    include_stderr: bool = False
    max_bytes: int = Field(default=10_485_760, gt=0)
    backup_count: int = Field(default=5, ge=0)


class ConfigModel(BaseModel):
    """Pydantic model for the whole configuration file.

    Key names match the YAML file, including the camelCase keys kept for
    compatibility with existing configurations.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    plex_server_url: str = Field(min_length=1)
    plex_owner_name: str | None = None
    plex_owner_token: str = Field(min_length=1)
    plex_client_identifier: str = Field(min_length=1)

    dry_run: bool = False
    partial_run_on_start: bool = False
    partial_run_cron_expression: str | None = None
    clean_run_on_start: bool = False
    skip_inaccessible_items: bool = Field(default=False, alias="skipInaccessibleItems")

    managed_users: dict[str, str] = Field(default_factory=dict)

    log_user_summary: bool = Field(default=False, alias="logUserSummary")
    log_json_user_summary: bool = Field(default=False, alias="logJsonUserSummary")
    audit_dir: str | None = Field(default=None, alias="auditDir")

    groups: dict[str, list[str]]
    filters: dict[str, dict[str, GroupFiltersModel | None]]

    max_attempts: int = Field(default=10, ge=1)
    retry_delay_seconds: float = Field(default=30.0, ge=0)
    pacing_delay_seconds: float = Field(default=0.1, ge=0)
    request_timeout_seconds: float = Field(default=600.0, gt=0)
    port: int = Field(default=3184, ge=1, le=65535)

    logging: LoggingModel = Field(default_factory=LoggingModel)

    @field_validator("plex_server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v[:-1] if v.endswith("/") else v

    @field_validator("partial_run_cron_expression")
    @classmethod
    def validate_cron(cls, v: str | None) -> str | None:
        if v is not None and not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression '{v}'")
        return v

    @field_validator("filters")
    @classmethod
    def validate_filter_groups(
        cls, v: dict[str, dict[str, Any]]
    ) -> dict[str, dict[str, Any]]:
        for library, groups in v.items():
            if groups is None:
                raise ValueError(f"library '{library}' has no groups")
        return v


@dataclass(frozen=True)
class RunOverrides:
    """Run flags given on the command line. None means "not specified"."""

    dry_run: bool | None = None
    skip_inaccessible_items: bool | None = None
    log_user_summary: bool | None = None
    log_json_user_summary: bool | None = None
    audit_dir: Path | None = None


def get_config_path(
    config_path: Path | None = None, reader: EnvReader | None = None
) -> Path:
    """Resolve the config file path: argument, DEFAULTER_CONFIG, default."""
    if config_path is not None:
        return config_path
    reader = reader or EnvReader()
    return reader.get_path("DEFAULTER_CONFIG", DEFAULT_CONFIG_FILE)


def _format_validation_error(error: ValidationError) -> tuple[str, str | None]:
    """Format a Pydantic validation error into a user-friendly message."""
    errors = error.errors()
    if errors:
        first_error = errors[0]
        loc = ".".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", str(error))
        if loc:
            return f"Config validation failed: {loc}: {msg}", loc
        return f"Config validation failed: {msg}", None
    return f"Config validation failed: {error}", None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read the raw YAML mapping from a config file.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}") from e

    if data is None:
        raise ConfigError("Config file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Config file must be a YAML mapping")
    return data


def _pick(*values: Any) -> Any:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def resolve_run_flags(
    model: ConfigModel,
    reader: EnvReader,
    overrides: RunOverrides | None = None,
) -> RunFlags:
    """Resolve run flags with CLI > environment > file precedence."""
    overrides = overrides or RunOverrides()
    audit_dir = _pick(
        overrides.audit_dir,
        reader.get_path("AUDIT_DIR"),
        Path(model.audit_dir).expanduser() if model.audit_dir else None,
    )
    return RunFlags(
        dry_run=_pick(overrides.dry_run, reader.get_bool("DRY_RUN"), model.dry_run),
        skip_inaccessible_items=_pick(
            overrides.skip_inaccessible_items,
            reader.get_bool("SKIP_INACCESSIBLE_ITEMS"),
            model.skip_inaccessible_items,
        ),
        log_user_summary=_pick(
            overrides.log_user_summary,
            reader.get_bool("LOG_USER_SUMMARY"),
            model.log_user_summary,
        ),
        log_json_user_summary=_pick(
            overrides.log_json_user_summary,
            reader.get_bool("LOG_JSON_USER_SUMMARY"),
            model.log_json_user_summary,
        ),
        audit_dir=audit_dir,
    )


def build_config(
    data: dict[str, Any],
    *,
    reader: EnvReader | None = None,
    overrides: RunOverrides | None = None,
) -> DefaulterConfig:
    """Validate raw config data and build DefaulterConfig.

    Args:
        data: Parsed YAML mapping.
        reader: Environment reader (defaults to os.environ).
        overrides: Run flags from the command line.

    Raises:
        ConfigError: If the data fails validation.
    """
    reader = reader or EnvReader()
    try:
        model = ConfigModel.model_validate(data)
    except ValidationError as e:
        message, loc = _format_validation_error(e)
        raise ConfigError(message, field=loc) from e

    try:
        return DefaulterConfig(
            plex=PlexConfig(
                server_url=model.plex_server_url,
                owner_token=model.plex_owner_token,
                client_identifier=model.plex_client_identifier,
                owner_name=model.plex_owner_name,
                request_timeout=model.request_timeout_seconds,
            ),
            flags=resolve_run_flags(model, reader, overrides),
            retry=RetryConfig(
                max_attempts=model.max_attempts,
                retry_delay=model.retry_delay_seconds,
                pacing_delay=model.pacing_delay_seconds,
            ),
            schedule=ScheduleConfig(
                partial_run_on_start=model.partial_run_on_start,
                clean_run_on_start=model.clean_run_on_start,
                partial_run_cron_expression=model.partial_run_cron_expression,
            ),
            managed_users=dict(model.managed_users),
            groups={name: list(members) for name, members in model.groups.items()},
            library_rules=build_library_rules(model.filters),
            port=reader.get_int("PORT", model.port),
            logging=LoggingConfig(
                level=model.logging.level,
                file=Path(model.logging.file) if model.logging.file else None,
                format=model.logging.format,
                include_stderr=model.logging.include_stderr,
                max_bytes=model.logging.max_bytes,
                backup_count=model.logging.backup_count,
            ),
        )
    except ValueError as e:
        raise ConfigError(f"Config validation failed: {e}") from e


def load_config(
    config_path: Path | None = None,
    *,
    reader: EnvReader | None = None,
    overrides: RunOverrides | None = None,
) -> DefaulterConfig:
    """Load, validate and resolve the configuration.

    Args:
        config_path: Explicit config file path (None uses DEFAULTER_CONFIG
            or ./config.yaml).
        reader: Environment reader (defaults to os.environ).
        overrides: Run flags from the command line.

    Returns:
        Fully resolved DefaulterConfig.

    Raises:
        ConfigError: If the file cannot be read or fails validation.
    """
    reader = reader or EnvReader()
    path = get_config_path(config_path, reader)
    config = build_config(read_config_file(path), reader=reader, overrides=overrides)
    logger.info("Validated and loaded config file %s", path)
    return config
