# src/llmbridge/api.py
"""
Core API Facade for the llmbridge library.
"""

import logging
import pathlib
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import pydantic

from .client import LLMClient
from .config.loader import load_config
from .config.models import LLMBridgeSettings
from .exceptions import ConfigError, ValidationError
from .health import HealthChecker
from .logging_config import configure_logging
from .models import HealthCheckDetails, SearchRequest, SearchResponse
from .providers.base import RequestLike
from .providers.manager import ProviderManager
from .streaming.relay import StreamingRelay
from .streaming.stream import ChatCompletionStream
from .streaming.transport import ChannelAddress, InMemoryTransport
from .vector.service import VectorService

logger = logging.getLogger(__name__)


class LLMBridge:
    """
    Main entry point: the LLM provider proxy, its streaming relay, vector
    search and the health check, wired from one configuration.

    Initialize it with `LLMBridge.create()`.
    """
    settings: LLMBridgeSettings
    provider_manager: ProviderManager
    transport: InMemoryTransport
    relay: StreamingRelay
    vector_service: Optional[VectorService]
    health_checker: HealthChecker

    def __init__(self, settings: LLMBridgeSettings, transport: Optional[InMemoryTransport] = None):
        """
        Wires the components. Prefer `LLMBridge.create()`, which also loads the
        configuration and sets up logging.
        """
        self.settings = settings
        self.provider_manager = ProviderManager(settings.provider, log_raw_payloads=settings.llmbridge.log_raw_payloads)
        self.transport = transport or InMemoryTransport(retention_seconds=settings.llmbridge.stream_retention_seconds)
        self.relay = StreamingRelay(self.provider_manager, self.transport)
        self.vector_service = None
        if settings.vector.enabled:
            try:
                self.vector_service = VectorService.create(settings.vector, settings.source)
            except ConfigError as e:
                # Reported by the health check as "vector service not configured".
                logger.error(f"Error creating vector service: {e}")
        self.health_checker = HealthChecker(
            settings.provider, self.provider_manager, settings.vector, self.vector_service
        )

    @classmethod
    async def create(
        cls,
        config_overrides: Optional[Dict[str, Any]] = None,
        config_file_path: Optional[Union[str, pathlib.Path]] = None,
    ) -> "LLMBridge":
        """
        Loads the configuration and creates an initialized instance.

        Args:
            config_overrides: Overrides applied on top of the defaults and the
                config file (nested dictionaries or dotted keys).
            config_file_path: Optional user TOML file.

        Raises:
            ConfigError: If the configuration cannot be loaded or validated.
        """
        settings = load_config(config_file_path, config_overrides)
        configure_logging(app_name="llmbridge", config=settings.logging)
        level_name = settings.llmbridge.log_level.upper()
        logging.getLogger("llmbridge").setLevel(logging.getLevelName(level_name))
        logger.info(f"llmbridge logger level set to: {level_name}")
        instance = cls(settings)
        logger.info("llmbridge components initialization complete.")
        return instance

    # --- Provider proxy ---

    async def models(self) -> List[str]:
        return await self.provider_manager.get_provider().models()

    async def chat_completion(self, request: RequestLike) -> Dict[str, Any]:
        """Non-streamed chat completion through the configured provider."""
        return await self.provider_manager.get_provider().chat_completion(request)

    async def chat_completion_stream(self, request: RequestLike) -> ChatCompletionStream:
        """Streamed chat completion through the configured provider."""
        return await self.provider_manager.get_provider().chat_completion_stream(request)

    # --- Streaming relay ---

    async def run_stream(self, address: ChannelAddress, data: Union[bytes, str, Dict[str, Any]]) -> None:
        """Runs a streamed completion and publishes it on `address`. See `StreamingRelay.run_stream`."""
        await self.relay.run_stream(address, data)

    def subscribe(self, address: ChannelAddress) -> AsyncIterator[Dict[str, Any]]:
        """Follows the messages published on `address`, replaying them from the start."""
        return self.transport.subscribe(address)

    # --- Vector search ---

    def _require_vector_service(self) -> VectorService:
        if self.vector_service is None:
            raise ConfigError("vector service not configured")
        return self.vector_service

    async def vector_search(self, body: Union[SearchRequest, Dict[str, Any], bytes, str]) -> SearchResponse:
        """
        Semantic search for a request body `{"collection", "query", "topK", "filter"}`.

        Raises:
            ConfigError: If the vector service is not configured.
            ValidationError: If the body is malformed. See `VectorService.search`
                for the remaining errors.
        """
        service = self._require_vector_service()
        if isinstance(body, SearchRequest):
            request = body
        else:
            try:
                if isinstance(body, (bytes, str)):
                    request = SearchRequest.model_validate_json(body)
                else:
                    request = SearchRequest.model_validate(body)
            except pydantic.ValidationError as e:
                raise ValidationError(f"malformed search request: {e}") from e
        return await service.search_request(request)

    def start_sync(self) -> bool:
        """Starts the background vector sync. Returns whether it is running."""
        if self.vector_service is None:
            return False
        return self.vector_service.start_sync() is not None

    # --- Health ---

    async def check_health(self) -> HealthCheckDetails:
        return await self.health_checker.check_health()

    def create_client(self) -> LLMClient:
        """An `LLMClient` for the Grafana instance configured under `[client]`."""
        client_settings = self.settings.client
        return LLMClient(client_settings.grafana_url, client_settings.api_key, timeout=client_settings.timeout)

    async def close(self) -> None:
        """Stops the sync and closes provider and vector resources."""
        logger.info("Closing llmbridge resources...")
        try:
            if self.vector_service is not None:
                await self.vector_service.close()
        finally:
            await self.provider_manager.close()
        logger.info("llmbridge resources cleanup complete.")

    async def __aenter__(self) -> "LLMBridge":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
