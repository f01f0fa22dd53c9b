# src/llmbridge/providers/manager.py
"""
Provider Manager for llmbridge.

Selects the provider implementation from the `[provider]` configuration
section and keeps a single, lazily constructed instance of it.
"""

import logging
from typing import Dict, Optional, Type

from ..config.models import ProviderSettings
from ..exceptions import ConfigError
from .anthropic_provider import AnthropicProvider
from .azure_provider import AzureOpenAIProvider
from .base import BaseProvider
from .grafana_provider import GrafanaGatewayProvider
from .openai_provider import CustomOpenAIProvider, OpenAIProvider
from .simulated_provider import SimulatedProvider

logger = logging.getLogger(__name__)

# --- Mapping from config provider type string to class ---
PROVIDER_MAP: Dict[str, Type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "custom": CustomOpenAIProvider,
    "azure": AzureOpenAIProvider,
    "grafana": GrafanaGatewayProvider,
    "anthropic": AnthropicProvider,
    "test": SimulatedProvider,
}
# --- End Mapping ---


def create_provider(settings: ProviderSettings, log_raw_payloads: bool = False) -> BaseProvider:
    """
    Instantiates the provider selected by `settings.type`.

    Raises:
        ConfigError: If the provider is disabled, unconfigured or of an unknown type,
                     or if its configuration is invalid (e.g. a malformed azure mapping).
    """
    if settings.disabled:
        raise ConfigError("LLM functionality is disabled")
    provider_cls = PROVIDER_MAP.get(settings.type or "")
    if provider_cls is None:
        logger.warning(f"Provider type '{settings.type}' is not supported or not configured.")
        raise ConfigError("invalid provider configuration")
    provider = provider_cls(settings, log_raw_payloads=log_raw_payloads)
    logger.info(f"Provider '{settings.type}' initialized successfully. Raw payload logging: {log_raw_payloads}.")
    return provider


class ProviderManager:
    """
    Owns the configured provider instance.

    The provider is constructed on first use, so a misconfiguration surfaces
    as a `ConfigError` on the call that needs the provider rather than at startup.
    """
    _provider: Optional[BaseProvider]

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        self.settings = settings
        self._log_raw_payloads = log_raw_payloads
        self._provider = None

    @property
    def enabled(self) -> bool:
        return not self.settings.disabled

    def get_provider(self) -> BaseProvider:
        """
        Returns the provider instance, creating it on first call.

        Raises:
            ConfigError: See `create_provider`.
        """
        if self._provider is None:
            self._provider = create_provider(self.settings, self._log_raw_payloads)
        return self._provider

    def update_log_raw_payloads_setting(self, enable: bool) -> None:
        """Toggles raw payload logging for the current and any future provider instance."""
        logger.info(f"ProviderManager updating raw payload logging to: {enable}")
        self._log_raw_payloads = enable
        if self._provider is not None:
            self._provider.log_raw_payloads_enabled = enable

    async def close(self) -> None:
        """Closes the provider instance, if one was created."""
        if self._provider is None:
            return
        try:
            await self._provider.close()
            logger.info(f"Provider '{self._provider.get_name()}' closed.")
        except Exception as e:
            logger.error(f"Error closing provider '{self._provider.get_name()}': {e}", exc_info=True)
        finally:
            self._provider = None
