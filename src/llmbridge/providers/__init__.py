# src/llmbridge/providers/__init__.py
"""
LLM provider implementations for llmbridge.

Every provider speaks the OpenAI chat completions protocol towards the
caller. `ProviderManager` picks the implementation named by the `[provider]`
configuration section.
"""

from .anthropic_provider import AnthropicProvider
from .azure_provider import AzureOpenAIProvider
from .base import BaseProvider, model_from_string
from .grafana_provider import GrafanaGatewayProvider
from .manager import PROVIDER_MAP, ProviderManager, create_provider
from .openai_provider import CustomOpenAIProvider, OpenAIProvider
from .simulated_provider import SimulatedProvider

__all__ = [
    "AnthropicProvider",
    "AzureOpenAIProvider",
    "BaseProvider",
    "CustomOpenAIProvider",
    "GrafanaGatewayProvider",
    "OpenAIProvider",
    "PROVIDER_MAP",
    "ProviderManager",
    "SimulatedProvider",
    "create_provider",
    "model_from_string",
]
