"""Configuration management for the Mirako CLI."""

from mirako.core.config.loader import (
    CONFIG_KEYS,
    apply_overrides,
    default_config_path,
    get_config_value,
    load_config,
    save_config,
    set_config_value,
)
from mirako.core.config.models import InteractiveProfile, MirakoConfig

__all__ = [
    # Loaders
    "load_config",
    "save_config",
    "apply_overrides",
    "default_config_path",
    "get_config_value",
    "set_config_value",
    "CONFIG_KEYS",
    # Models
    "MirakoConfig",
    "InteractiveProfile",
]
