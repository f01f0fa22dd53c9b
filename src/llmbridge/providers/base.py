# src/llmbridge/providers/base.py
"""
Abstract Base Class for the LLM providers behind the proxy.

This module defines the interface every provider implementation (OpenAI,
Azure OpenAI, Anthropic, the Grafana LLM gateway, the simulated test
provider) adheres to, together with the request validation and abstract
model resolution they all share.
"""

import abc
from typing import Any, AsyncIterator, Dict, List, Union

import pydantic

from ..config.models import ABSTRACT_MODELS, ProviderSettings
from ..exceptions import ValidationError
from ..models import ChatCompletionRequest, Role
from ..streaming.stream import ChatCompletionStream

RequestLike = Union[ChatCompletionRequest, Dict[str, Any]]
KNOWN_ROLES = frozenset(role.value for role in Role)


def coerce_request(request: RequestLike) -> ChatCompletionRequest:
    """
    Accepts a request model or its dictionary form.

    Raises:
        ValidationError: If the dictionary does not describe a chat request.
    """
    if isinstance(request, ChatCompletionRequest):
        return request
    try:
        return ChatCompletionRequest.model_validate(request)
    except pydantic.ValidationError as e:
        raise ValidationError(f"malformed chat completion request: {e}") from e


def validate_chat_request(request: ChatCompletionRequest) -> None:
    """
    Fails fast on requests no provider could serve.

    Raises:
        ValidationError: If there are no messages, or a message lacks content or
            has a missing or unknown role. Roles are matched exactly: "User" is
            rejected rather than rewritten.
    """
    if not request.messages:
        raise ValidationError("at least one message is required")
    for index, message in enumerate(request.messages):
        if not message.role:
            raise ValidationError(f"role is required for each message (message {index})")
        if message.role not in KNOWN_ROLES:
            raise ValidationError(f"unknown role '{message.role}' (message {index})")
        if not message.content:
            raise ValidationError(f"content is required for each message (message {index})")


def model_from_string(model: str) -> str:
    """
    Maps a requested model onto an abstract model name.

    Abstract names pass through. Older OpenAI names are accepted for
    compatibility: `gpt-4*` without `-mini` is `large`, `gpt-3.5*` or any
    `*-mini*` is `base`.

    Raises:
        ValidationError: For any other model name.
    """
    if model == "large" or (model.startswith("gpt-4") and "-mini" not in model):
        return "large"
    if model == "base" or model.startswith("gpt-3.5") or "-mini" in model:
        return "base"
    raise ValidationError(f"unrecognized model: {model}")


class BaseProvider(abc.ABC):
    """
    Abstract Base Class for LLM provider integrations.

    Subclasses implement `_chat_completion` and `_open_stream`; the public
    methods validate the request first, and a malformed request never
    reaches the network.
    """
    log_raw_payloads_enabled: bool

    def __init__(self, settings: ProviderSettings, log_raw_payloads: bool = False):
        """
        Args:
            settings: The `[provider]` configuration section.
            log_raw_payloads: Whether raw request/response payloads are logged at DEBUG level.
        """
        self.settings = settings
        self.log_raw_payloads_enabled = log_raw_payloads

    @abc.abstractmethod
    def get_name(self) -> str:
        """Return the provider's name, e.g. "openai"."""
        pass

    async def models(self) -> List[str]:
        """Return the abstract models this provider can serve."""
        return list(ABSTRACT_MODELS)

    async def chat_completion(self, request: RequestLike) -> Dict[str, Any]:
        """
        Perform a non-streamed chat completion.

        Args:
            request: The chat request. Its messages are forwarded unmodified.

        Returns:
            The provider response as a dictionary (OpenAI response shape).

        Raises:
            ValidationError: If the request is malformed. No network call is made.
            ProviderError: If the provider call fails.
        """
        chat_request = coerce_request(request)
        validate_chat_request(chat_request)
        return await self._chat_completion(chat_request.with_stream(False))

    async def chat_completion_stream(self, request: RequestLike) -> ChatCompletionStream:
        """
        Open a streamed chat completion.

        Returns:
            A `ChatCompletionStream` handle. Errors raised by the provider while
            streaming surface on the handle's next read.

        Raises:
            ValidationError: If the request is malformed. No network call is made.
            ProviderError: If the stream cannot be established.
        """
        chat_request = coerce_request(request)
        validate_chat_request(chat_request)
        chunks = await self._open_stream(chat_request.with_stream(True))
        return ChatCompletionStream(chunks, provider_name=self.get_name())

    @abc.abstractmethod
    async def _chat_completion(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        pass

    @abc.abstractmethod
    async def _open_stream(self, request: ChatCompletionRequest) -> AsyncIterator[Dict[str, Any]]:
        """Establish the upstream stream and return an iterator of raw chunk dictionaries."""
        pass

    async def close(self) -> None:
        """Release network resources. Providers without any can keep this default."""
        pass
