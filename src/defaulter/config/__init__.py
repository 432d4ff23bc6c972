"""Configuration for Plex Defaulter.

Public API:
- load_config / build_config: YAML + environment + CLI resolution
- DefaulterConfig and its section dataclasses
- ConfigError: raised for invalid configuration
"""

from defaulter.config.env import EnvReader
from defaulter.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigModel,
    RunOverrides,
    build_config,
    get_config_path,
    load_config,
    read_config_file,
)
from defaulter.config.logging_factory import build_logging_config
from defaulter.config.models import (
    DefaulterConfig,
    LoggingConfig,
    PlexConfig,
    RetryConfig,
    RunFlags,
    ScheduleConfig,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ConfigError",
    "ConfigModel",
    "DefaulterConfig",
    "EnvReader",
    "LoggingConfig",
    "PlexConfig",
    "RetryConfig",
    "RunFlags",
    "RunOverrides",
    "ScheduleConfig",
    "build_config",
    "build_logging_config",
    "get_config_path",
    "load_config",
    "read_config_file",
]
