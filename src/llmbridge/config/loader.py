# src/llmbridge/config/loader.py
"""
Configuration loading for llmbridge.

Merges, in increasing priority, the packaged `default_config.toml`, an
optional user TOML file and an overrides dictionary, then validates the result
with `LLMBridgeSettings`. Environment variables (`LLMBRIDGE_*`) are applied by
pydantic-settings on top of all of these.
"""

import copy
import importlib.resources
import logging
import pathlib
import tomllib
from typing import Any, Dict, Optional, Union

import pydantic

from ..exceptions import ConfigError
from .models import LLMBridgeSettings

logger = logging.getLogger(__name__)


def load_default_config() -> Dict[str, Any]:
    """Reads the packaged default configuration."""
    default_config_path = importlib.resources.files("llmbridge.config").joinpath("default_config.toml")
    with default_config_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges `updates` into a copy of `base`.

    Keys in `updates` may use dots to address nested sections, so
    `{"provider.openai.api_key": "sk"}` and
    `{"provider": {"openai": {"api_key": "sk"}}}` are equivalent.
    """
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if "." in key:
            head, rest = key.split(".", 1)
            value = {rest: value}
            key = head
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        elif isinstance(value, dict):
            merged[key] = deep_merge({}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(
    config_file_path: Optional[Union[str, pathlib.Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> LLMBridgeSettings:
    """
    Builds validated settings from defaults, a user file and overrides.

    Args:
        config_file_path: Optional path to a user TOML file.
        overrides: Optional dictionary of overrides (nested or dotted keys).

    Returns:
        The validated `LLMBridgeSettings`.

    Raises:
        ConfigError: If a file cannot be read or parsed, or validation fails.
    """
    try:
        merged = load_default_config()
        if config_file_path:
            path = pathlib.Path(config_file_path).expanduser()
            with path.open("rb") as f:
                merged = deep_merge(merged, tomllib.load(f))
            logger.debug(f"Merged user configuration from {path}")
        if overrides:
            merged = deep_merge(merged, overrides)
        return LLMBridgeSettings(**merged)
    except (OSError, tomllib.TOMLDecodeError, pydantic.ValidationError) as e:
        raise ConfigError(f"llmbridge configuration loading failed: {e}") from e
