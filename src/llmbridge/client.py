# src/llmbridge/client.py
"""
Client for plugins that consume LLM functionality through the proxy.

The proxy lives at `{grafana_url}/api/plugins/grafana-llm-app`. Chat requests
go through the OpenAI SDK pointed at the proxy's `llm/v1` resources, so the
responses keep the OpenAI shape whatever provider sits behind the proxy.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
import openai
from openai import AsyncOpenAI

from .exceptions import DataError, PluginNotInstalledError, ProviderError, TransportError
from .providers.base import RequestLike, coerce_request, validate_chat_request
from .streaming.stream import ChatCompletionStream

logger = logging.getLogger(__name__)

APP_PREFIX = "/api/plugins/grafana-llm-app"
APP_RESOURCES_PREFIX = APP_PREFIX + "/resources"
LLM_API_PREFIX = APP_RESOURCES_PREFIX + "/llm/v1"


class LLMClient:
    """
    Talks to the LLM app on behalf of another plugin.

    Args:
        grafana_url: Base URL of the Grafana instance.
        api_key: Service account token sent as a bearer token.
        timeout: Request timeout in seconds.
    """
    _session: Optional[aiohttp.ClientSession] = None

    def __init__(self, grafana_url: str, api_key: str, timeout: float = 120.0):
        self.grafana_url = grafana_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = AsyncOpenAI(
            api_key=api_key or "unset",
            base_url=self.grafana_url + LLM_API_PREFIX,
            timeout=timeout,
        )
        logger.debug(f"LLMClient configured for {self.grafana_url}{APP_PREFIX}")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))
            logger.debug("Created new aiohttp.ClientSession for LLMClient.")
        return self._session

    async def enabled(self) -> bool:
        """
        Reports whether the LLM app is installed and its provider is usable.

        Returns:
            False when the health endpoint does not answer 200 or the provider
            reports an error; otherwise the provider's `ok` flag.

        Raises:
            TransportError: If the health endpoint cannot be reached.
            DataError: If the health response cannot be parsed.
        """
        session = await self._get_session()
        url = f"{self.grafana_url}{APP_PREFIX}/health"
        try:
            async with session.get(url, headers={"Authorization": f"Bearer {self._api_key}"}) as resp:
                if resp.status != 200:
                    logger.info(f"LLM app health check returned status {resp.status}")
                    return False
                body = await resp.read()
        except asyncio.TimeoutError as e:
            raise TransportError("llm-app health", f"request timed out after {self._timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError("llm-app health", f"make request: {e}") from e

        try:
            details = json.loads(body)["details"]
            provider = details["llmProvider"]
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError) as e:
            raise DataError(f"unmarshal response: {e}") from e

        # Older versions of the app report a bare boolean.
        if isinstance(provider, bool):
            return provider
        if not isinstance(provider, dict):
            raise DataError(f"unmarshal response: unexpected llmProvider value {provider!r}")
        error = provider.get("error")
        if error:
            logger.warning(f"LLM provider error: {error}")
            return False
        return bool(provider.get("ok", False))

    def _wrap_error(self, e: openai.OpenAIError) -> ProviderError:
        if isinstance(e, openai.NotFoundError):
            return PluginNotInstalledError(f"LLM app not found at {self.grafana_url}{APP_PREFIX}: {e.message}")
        if isinstance(e, openai.APIStatusError):
            return ProviderError("llm-app", f"API Error (Status {e.status_code}): {e.message}")
        return ProviderError("llm-app", str(e))

    async def chat_completion(self, request: RequestLike) -> Dict[str, Any]:
        """
        Sends a chat completion through the proxy.

        Raises:
            ValidationError: If the request is malformed. No network call is made.
            PluginNotInstalledError: If the proxy answers 404.
            ProviderError: For any other failure reported by the proxy.
        """
        chat_request = coerce_request(request)
        validate_chat_request(chat_request)
        try:
            response = await self._client.chat.completions.create(
                model=chat_request.model,
                messages=chat_request.messages_payload(),
                stream=False,
                **chat_request.options(),
            )
        except openai.OpenAIError as e:
            logger.error(f"Chat completion through the LLM app failed: {e}")
            raise self._wrap_error(e) from e
        return response.model_dump(exclude_none=True)

    async def chat_completion_stream(self, request: RequestLike) -> ChatCompletionStream:
        """
        Opens a streamed chat completion through the proxy.

        Raises:
            ValidationError: If the request is malformed. No network call is made.
            PluginNotInstalledError: If the proxy answers 404.
            ProviderError: If the stream cannot be established.
        """
        chat_request = coerce_request(request)
        validate_chat_request(chat_request)
        try:
            upstream = await self._client.chat.completions.create(
                model=chat_request.model,
                messages=chat_request.messages_payload(),
                stream=True,
                **chat_request.options(),
            )
        except openai.OpenAIError as e:
            logger.error(f"Error establishing stream through the LLM app: {e}")
            raise self._wrap_error(e) from e

        async def chunks() -> AsyncIterator[Dict[str, Any]]:
            try:
                async for chunk in upstream:
                    yield chunk.model_dump(exclude_none=True)
            except openai.OpenAIError as e:
                raise self._wrap_error(e) from e
            finally:
                await upstream.close()

        return ChatCompletionStream(chunks(), provider_name="llm-app")

    async def close(self) -> None:
        """Closes the HTTP session and the OpenAI client."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("LLMClient aiohttp session closed.")
        self._session = None
        await self._client.close()
