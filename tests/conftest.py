"""Shared test fixtures for Plex Defaulter."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from defaulter.config.models import DefaulterConfig, PlexConfig, RetryConfig


@pytest.fixture
def plex_config() -> PlexConfig:
    return PlexConfig(
        server_url="http://plex.test:32400",
        owner_token="owner-token-123456",
        client_identifier="client-abc",
        owner_name="owner",
    )


@pytest.fixture
def base_config(plex_config: PlexConfig) -> DefaulterConfig:
    """Config without rules and with zero delays."""
    return DefaulterConfig(
        plex=plex_config,
        retry=RetryConfig(max_attempts=3, retry_delay=0, pacing_delay=0),
    )


@pytest.fixture
def config_data() -> dict[str, Any]:
    """Raw config file contents accepted by the loader."""
    return {
        "plex_server_url": "http://plex.test:32400/",
        "plex_owner_name": "owner",
        "plex_owner_token": "owner-token-123456",
        "plex_client_identifier": "client-abc",
        "groups": {"crew": ["alice", "bob"]},
        "filters": {
            "Movies": {
                "crew": {
                    "audio": [{"include": {"language": "English"}}],
                    "subtitles": "disabled",
                }
            }
        },
    }


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a YAML config file and return its path."""

    def _write(data: dict[str, Any], name: str = "config.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write
