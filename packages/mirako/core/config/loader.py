"""Configuration loading and saving with YAML files and environment overrides.

Precedence (lowest to highest): built-in defaults, the YAML file, ``MIRAKO_*``
environment variables, command-line flags (``apply_overrides``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from mirako.core.config.models import MirakoConfig
from mirako.core.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "MIRAKO_"

# CLI key -> model field
CONFIG_KEYS: dict[str, str] = {
    "api-token": "api_token",
    "api-url": "api_url",
    "default-model": "default_model",
    "default-voice": "default_voice",
    "default-save-path": "default_save_path",
    "default-poll-interval": "default_poll_interval",
}


def default_config_path() -> Path:
    """Location of the user config file (``~/.mirako/config.yml``)."""
    return Path.home() / ".mirako" / "config.yml"


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping; a missing or empty file yields an empty dict.

    Raises:
        ConfigError: If the file is unreadable, invalid YAML, or not a mapping
    """
    if not path.exists():
        logger.debug(f"Config file not found, using defaults: {path}")
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    # safe_load returns None for empty files
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return content


def _env_overrides() -> dict[str, str]:
    updates: dict[str, str] = {}
    for field in CONFIG_KEYS.values():
        value = os.getenv(ENV_PREFIX + field.upper())
        if value:
            logger.debug(f"Loaded {ENV_PREFIX}{field.upper()} from environment")
            updates[field] = value
    return updates


def load_config(path: str | Path | None = None, *, use_env: bool = True) -> MirakoConfig:
    """Load configuration from the YAML file and environment.

    Args:
        path: Config file path (defaults to ``~/.mirako/config.yml``)
        use_env: Apply ``MIRAKO_*`` environment overrides (off when the result
            will be written back, so environment values are not persisted)

    Returns:
        Validated MirakoConfig

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    path = Path(path) if path is not None else default_config_path()
    raw = _read_yaml(path)
    if use_env:
        raw.update(_env_overrides())
    try:
        return MirakoConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: MirakoConfig, path: str | Path | None = None) -> Path:
    """Write configuration as YAML, readable only by the current user.

    Args:
        config: Configuration to persist
        path: Destination (defaults to ``~/.mirako/config.yml``)

    Returns:
        Path written

    Raises:
        ConfigError: If the directory or file cannot be written
    """
    path = Path(path) if path is not None else default_config_path()
    data = config.model_dump(mode="json", exclude_none=True)
    if not data.get("interactive_profiles"):
        data.pop("interactive_profiles", None)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
        os.chmod(path, 0o600)
    except OSError as e:
        raise ConfigError(f"Failed to write config file {path}: {e}") from e
    logger.debug(f"Saved config to {path}")
    return path


def apply_overrides(
    config: MirakoConfig, *, api_token: str | None = None, api_url: str | None = None
) -> MirakoConfig:
    """Return a copy of ``config`` with command-line flag values applied."""
    updates: dict[str, Any] = {}
    if api_token:
        updates["api_token"] = api_token
    if api_url:
        updates["api_url"] = api_url
    if not updates:
        return config
    try:
        return MirakoConfig.model_validate({**config.model_dump(), **updates})
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid command-line override: {e}") from e


def set_config_value(config: MirakoConfig, key: str, value: str) -> MirakoConfig:
    """Return a copy of ``config`` with one CLI-addressable key changed.

    Raises:
        ConfigError: If the key is unknown or the value is invalid
    """
    field = CONFIG_KEYS.get(key)
    if field is None:
        raise ConfigError(f"Unknown config key: {key}. Valid keys: {', '.join(CONFIG_KEYS)}")
    try:
        return MirakoConfig.model_validate({**config.model_dump(), field: value})
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {value}") from e


def get_config_value(config: MirakoConfig, key: str) -> str:
    """Format one CLI-addressable key for display; the token is never shown.

    Raises:
        ConfigError: If the key is unknown
    """
    field = CONFIG_KEYS.get(key)
    if field is None:
        raise ConfigError(f"Unknown config key: {key}. Valid keys: {', '.join(CONFIG_KEYS)}")
    value = getattr(config, field)
    if field == "api_token":
        return "***" if value else "(not set)"
    return str(value)
