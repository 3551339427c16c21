"""Configuration loading for storymap.

Configuration comes from ``.storymap.toml``, deep-merged over
``DEFAULT_CONFIG``, then overridden by ``STORYMAP_<SECTION>_<KEY>``
environment variables.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from storymap.config.defaults import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".storymap.toml"
ENV_PREFIX = "STORYMAP_"


class ConfigError(ValueError):
    """The configuration file cannot be parsed."""


def find_config_file(start: Path) -> Path | None:
    """Find ``.storymap.toml`` in ``start`` or any parent directory."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _try_parse_env_value(value: str) -> Any:
    """Parse an environment value: JSON lists/objects, booleans, numbers, strings."""
    stripped = value.strip()
    if stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply ``STORYMAP_<SECTION>_<KEY>`` variables to ``config`` in place.

    The first word after the prefix names the section. When the rest
    starts with the name of an existing sub-table it is descended into,
    so ``STORYMAP_LAYOUT_LAYERED_CARD_WIDTH`` sets
    ``layout.layered.card_width``.
    """
    for name, raw in sorted(os.environ.items()):
        if not name.startswith(ENV_PREFIX):
            continue
        rest = name[len(ENV_PREFIX) :].lower()
        if "_" not in rest:
            continue
        section, key = rest.split("_", 1)
        target = config.setdefault(section, {})
        if not isinstance(target, dict):
            continue
        descended = True
        while descended:
            descended = False
            for sub in sorted(target, key=len, reverse=True):
                if isinstance(target[sub], dict) and key.startswith(f"{sub}_"):
                    target = target[sub]
                    key = key[len(sub) + 1 :]
                    descended = True
                    break
        target[key] = _try_parse_env_value(raw)
        logger.debug("Config override from %s", name)
    return config


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merged over defaults, with env overrides.

    Args:
        path: Config file; None uses defaults only.

    Raises:
        ConfigError: If the file is not valid TOML.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path is not None:
        try:
            document = tomlkit.parse(Path(path).read_text(encoding="utf-8"))
        except (OSError, TOMLKitError) as e:
            raise ConfigError(f"Cannot load {path}: {e}") from e
        config = merge_configs(config, document.unwrap())
        logger.debug("Loaded config from %s", path)
    return _apply_env_overrides(config)


def get_config(start: Path | None = None) -> dict[str, Any]:
    """Find and load the configuration for a directory."""
    return load_config(find_config_file(start or Path.cwd()))
