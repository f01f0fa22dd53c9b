# src/llmbridge/providers/anthropic_provider.py
"""
Anthropic API provider implementation for llmbridge.

Uses the official 'anthropic' Python SDK. Requests arrive in the OpenAI chat
shape and are translated to the Messages API: system messages become the
`system` prompt and `max_tokens`, which Anthropic requires, defaults to
1000. Responses and stream events are converted back to OpenAI-shaped
dictionaries so the proxy and the streaming relay treat every provider alike.
"""

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import anthropic
from anthropic import AsyncAnthropic

from ..config.models import ProviderSettings
from ..exceptions import ConfigError, ProviderError
from ..models import ChatCompletionRequest, Role
from .base import BaseProvider, model_from_string

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1000

# Anthropic stop reasons to OpenAI finish reasons.
FINISH_REASONS: Dict[str, str] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


def finish_reason(stop_reason: Optional[str]) -> Optional[str]:
    """Maps an Anthropic stop reason to an OpenAI finish reason. Unknown reasons become "stop"."""
    if stop_reason is None:
        return None
    return FINISH_REASONS.get(stop_reason, "stop")


def split_system_prompt(request: ChatCompletionRequest) -> Tuple[Optional[str], List[Dict[str, str]]]:
    """
    Separates system messages from the conversation.

    Returns:
        The system prompt (system messages joined by blank lines, or None) and
        the user/assistant messages in order.
    """
    system_parts: List[str] = []
    messages: List[Dict[str, str]] = []
    for message in request.messages:
        role = Role(message.role)
        if role == Role.SYSTEM:
            system_parts.append(message.content)
        else:
            messages.append({"role": role.value, "content": message.content})
    return ("\n\n".join(system_parts) or None), messages


class AnthropicProvider(BaseProvider):
    """
    llmbridge provider for the Anthropic Messages API (Claude models).

    Abstract models are resolved through `[provider.models]`; mappings left
    at the OpenAI defaults resolve to Claude models.
    """
    _client: Optional[AsyncAnthropic] = None

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        """
        Initializes the AnthropicProvider.

        Args:
            settings: The `[provider]` section. Uses `anthropic.url`, `anthropic.api_key`,
                      `anthropic.timeout` and `anthropic.max_retries`.
            log_raw_payloads: Whether to log raw request/response payloads.
        """
        super().__init__(settings, log_raw_payloads)
        anthropic_settings = settings.anthropic
        self.timeout = anthropic_settings.timeout
        if not anthropic_settings.api_key:
            logger.warning("Anthropic API key is not configured. Requests will be rejected by the API.")
        try:
            self._client = AsyncAnthropic(
                api_key=anthropic_settings.api_key or "unset",
                base_url=anthropic_settings.url.rstrip("/"),
                timeout=self.timeout,
                max_retries=anthropic_settings.max_retries,
            )
            logger.debug("AsyncAnthropic client initialized.")
        except anthropic.AnthropicError as e:
            logger.error(f"Failed to initialize Anthropic client: {e}", exc_info=True)
            raise ConfigError(f"Anthropic client initialization failed: {e}") from e

    def get_name(self) -> str:
        return "anthropic"

    def _request_kwargs(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        system_prompt, messages = split_system_prompt(request)
        options = request.options()
        max_tokens = options.pop("max_tokens", None)
        max_completion_tokens = options.pop("max_completion_tokens", None)
        kwargs: Dict[str, Any] = {
            "model": self.settings.models.resolve(model_from_string(request.model)),
            "messages": messages,
            "max_tokens": max_tokens or max_completion_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_prompt is not None:
            kwargs["system"] = system_prompt
        for key in ("temperature", "top_p"):
            if options.get(key) is not None:
                kwargs[key] = options.pop(key)
        stop = options.pop("stop", None)
        if stop:
            kwargs["stop_sequences"] = [stop] if isinstance(stop, str) else list(stop)
        if options:
            logger.debug(f"Options not supported by Anthropic were dropped: {sorted(options)}")
        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM REQUEST ({self.get_name()}): {json.dumps(kwargs, default=str)}")
        return kwargs

    def _wrap_error(self, e: Exception) -> ProviderError:
        if isinstance(e, anthropic.APIStatusError):
            logger.error(f"Anthropic API error: Status {e.status_code} - {e.message}")
            if e.status_code == 401:
                return ProviderError(self.get_name(), f"Authentication failed (Invalid API Key? Status 401): {e.message}")
            return ProviderError(self.get_name(), f"API Error (Status {e.status_code}): {e.message}")
        if isinstance(e, anthropic.APITimeoutError):
            logger.error(f"Request to Anthropic timed out after {self.timeout} seconds.")
            return ProviderError(self.get_name(), f"Request timed out after {self.timeout}s.")
        if isinstance(e, anthropic.APIConnectionError):
            logger.error(f"Could not reach Anthropic: {e}")
            return ProviderError(self.get_name(), f"could not reach provider: {e}")
        logger.error(f"Unexpected error from Anthropic: {e}", exc_info=True)
        return ProviderError(self.get_name(), f"An unexpected error occurred: {e}")

    def _to_openai_response(self, response: Any) -> Dict[str, Any]:
        text = "".join(block.text for block in response.content if block.type == "text")
        result: Dict[str, Any] = {
            "id": response.id,
            "object": "chat.completion",
            "created": int(time.time()),
            "model": response.model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": text},
                    "finish_reason": finish_reason(response.stop_reason) or "stop",
                }
            ],
        }
        if response.usage is not None:
            prompt_tokens = response.usage.input_tokens
            completion_tokens = response.usage.output_tokens
            result["usage"] = {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            }
        return result

    async def _chat_completion(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        if not self._client:
            raise ProviderError(self.get_name(), "client is closed.")
        kwargs = self._request_kwargs(request)
        logger.debug(f"Sending message request to Anthropic: model='{kwargs['model']}', "
                     f"num_messages={len(kwargs['messages'])}, system_prompt_present={'system' in kwargs}")
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.AnthropicError as e:
            raise self._wrap_error(e) from e
        if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"RAW LLM RESPONSE ({self.get_name()}): {response.model_dump_json()}")
        return self._to_openai_response(response)

    async def _open_stream(self, request: ChatCompletionRequest) -> AsyncIterator[Dict[str, Any]]:
        if not self._client:
            raise ProviderError(self.get_name(), "client is closed.")
        kwargs = self._request_kwargs(request)
        try:
            upstream = await self._client.messages.create(**kwargs, stream=True)
        except anthropic.AnthropicError as e:
            logger.error(f"Error establishing stream with Anthropic: {e}")
            raise self._wrap_error(e) from e

        async def stream_wrapper() -> AsyncIterator[Dict[str, Any]]:
            message_id = ""
            model = kwargs["model"]
            try:
                async for event in upstream:
                    if self.log_raw_payloads_enabled and logger.isEnabledFor(logging.DEBUG):
                        logger.debug(f"RAW LLM STREAM EVENT ({self.get_name()}): {event.model_dump_json()}")
                    if event.type == "message_start":
                        message_id = event.message.id
                        model = event.message.model or model
                        delta: Dict[str, Any] = {"role": "assistant"}
                        reason = None
                    elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                        delta = {"content": event.delta.text}
                        reason = None
                    elif event.type == "message_delta" and event.delta.stop_reason:
                        delta = {}
                        reason = finish_reason(event.delta.stop_reason)
                    else:
                        continue
                    yield {
                        "id": message_id,
                        "object": "chat.completion.chunk",
                        "model": model,
                        "choices": [{"index": 0, "delta": delta, "finish_reason": reason}],
                    }
            except anthropic.AnthropicError as e:
                raise self._wrap_error(e) from e
            finally:
                await upstream.close()

        return stream_wrapper()

    async def close(self) -> None:
        """Closes the underlying Anthropic client."""
        if self._client:
            try:
                await self._client.close()
                logger.info("anthropic provider client closed.")
            finally:
                self._client = None
