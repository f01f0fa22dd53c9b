# src/llmbridge/providers/openai_provider.py
"""
OpenAI API provider implementation for llmbridge.

Handles the OpenAI API itself and any OpenAI-compatible endpoint (the
`custom` provider type). The Azure and Grafana gateway providers reuse this
class with a differently configured client.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import openai
from openai import AsyncOpenAI

from ..config.models import ProviderSettings
from ..exceptions import ConfigError, ProviderError
from ..models import ChatCompletionRequest
from .base import BaseProvider, model_from_string

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseProvider):
    """
    llmbridge provider for the OpenAI chat completions API.

    Abstract models (`base`, `large`) are resolved to OpenAI model names
    through the `[provider.models]` mapping.
    """
    _client: Optional[AsyncOpenAI] = None

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False, name: str = "openai"):
        """
        Initializes the OpenAIProvider.

        Args:
            settings: The `[provider]` section. Uses `openai.url`, `openai.api_path`,
                      `openai.api_key`, `openai.organization_id` and `openai.timeout`.
            log_raw_payloads: Whether to log raw request/response payloads.
            name: Provider name used in logs and errors ("openai" or "custom").
        """
        super().__init__(settings, log_raw_payloads)
        self._name = name
        self.timeout = settings.openai.timeout
        try:
            self._client = self._create_client()
            logger.debug(f"AsyncOpenAI client initialized for provider '{self._name}'.")
        except openai.OpenAIError as e:
            logger.error(f"Failed to initialize AsyncOpenAI client: {e}", exc_info=True)
            raise ConfigError(f"OpenAI client initialization failed: {e}") from e

    def _create_client(self) -> AsyncOpenAI:
        openai_settings = self.settings.openai
        base_url = openai_settings.url.rstrip("/") + "/" + openai_settings.api_path.strip("/")
        return AsyncOpenAI(
            api_key=openai_settings.api_key or "unset",
            organization=openai_settings.organization_id or None,
            base_url=base_url.rstrip("/"),
            timeout=self.timeout,
        )

    def get_name(self) -> str:
        return self._name

    def _model_for(self, request: ChatCompletionRequest) -> str:
        return self.settings.models.resolve(model_from_string(request.model))

    def _request_kwargs(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self._model_for(request),
            "messages": request.messages_payload(),
            "stream": request.stream,
            **request.options(),
        }
        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM REQUEST ({self.get_name()}): {json.dumps(kwargs, default=str)}")
        return kwargs

    def _wrap_error(self, e: Exception) -> ProviderError:
        if isinstance(e, openai.APIStatusError):
            logger.error(f"{self.get_name()} API error: Status {e.status_code} - {e.message}")
            if e.status_code == 401:
                return ProviderError(self.get_name(), f"Authentication failed (Invalid API Key? Status 401): {e.message}")
            return ProviderError(self.get_name(), f"API Error (Status {e.status_code}): {e.message}")
        if isinstance(e, openai.APITimeoutError):
            logger.error(f"Request to {self.get_name()} timed out after {self.timeout} seconds.")
            return ProviderError(self.get_name(), f"Request timed out after {self.timeout}s.")
        if isinstance(e, openai.APIConnectionError):
            logger.error(f"Could not reach {self.get_name()}: {e}")
            return ProviderError(self.get_name(), f"could not reach provider: {e}")
        logger.error(f"Unexpected error from {self.get_name()}: {e}", exc_info=True)
        return ProviderError(self.get_name(), f"An unexpected error occurred: {e}")

    async def _chat_completion(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        if not self._client:
            raise ProviderError(self.get_name(), "client is closed.")
        kwargs = self._request_kwargs(request)
        logger.debug(f"Sending chat completion to {self.get_name()}: model='{kwargs['model']}', "
                     f"num_messages={len(kwargs['messages'])}")
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise self._wrap_error(e) from e
        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM RESPONSE ({self.get_name()}): {response.model_dump_json()}")
        return response.model_dump(exclude_none=True)

    async def _open_stream(self, request: ChatCompletionRequest) -> AsyncIterator[Dict[str, Any]]:
        if not self._client:
            raise ProviderError(self.get_name(), "client is closed.")
        kwargs = self._request_kwargs(request)
        try:
            upstream = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"Error establishing stream with {self.get_name()}: {e}")
            raise self._wrap_error(e) from e

        async def stream_wrapper() -> AsyncIterator[Dict[str, Any]]:
            try:
                async for chunk in upstream:
                    if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
                        logger.debug(f"RAW LLM STREAM CHUNK ({self.get_name()}): {chunk.model_dump_json()}")
                    yield chunk.model_dump(exclude_none=True)
            except openai.OpenAIError as e:
                raise self._wrap_error(e) from e
            finally:
                await upstream.close()

        return stream_wrapper()

    async def close(self) -> None:
        """Closes the underlying OpenAI client."""
        if self._client:
            try:
                await self._client.close()
                logger.info(f"{self.get_name()} provider client closed.")
            finally:
                self._client = None


class CustomOpenAIProvider(OpenAIProvider):
    """Any OpenAI-compatible endpoint, configured through the same `[provider.openai]` section."""

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        super().__init__(settings, log_raw_payloads, name="custom")
