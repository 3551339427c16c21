"""
storymap.config - Configuration loading and defaults
"""

from storymap.config.defaults import DEFAULT_CONFIG
from storymap.config.loader import (
    ConfigError,
    find_config_file,
    get_config,
    load_config,
    merge_configs,
)

__all__ = [
    "load_config",
    "get_config",
    "find_config_file",
    "merge_configs",
    "ConfigError",
    "DEFAULT_CONFIG",
]
