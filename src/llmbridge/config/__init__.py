# src/llmbridge/config/__init__.py
"""
Configuration package for the llmbridge library.

Configuration files:
    - default_config.toml: Packaged defaults
    - User config: passed as LLMBridge.create(config_file_path=...)

Environment variables:
    - Prefix: LLMBRIDGE_
    - Nested keys use double underscores: LLMBRIDGE_VECTOR__STORE__TYPE
"""

from .loader import deep_merge, load_config, load_default_config
from .models import LLMBridgeSettings

__all__ = ["LLMBridgeSettings", "deep_merge", "load_config", "load_default_config"]
