# src/llmbridge/streaming/relay.py
"""
Streaming relay: republishes a provider stream on a transport channel.

Each upstream event becomes one transport message, in order. The stream ends
with a `{"choices": [{"delta": {"done": true}}]}` marker, which subscribers use
to know when to unsubscribe. Failures are published as `{"error": "..."}`
messages rather than raised.
"""

import asyncio
import json
import logging
import random
from typing import Any, Dict, Union

from ..exceptions import LLMBridgeError, ValidationError
from ..models import StreamEvent
from ..providers.base import coerce_request
from ..providers.manager import ProviderManager
from .stream import ChatCompletionStream
from .transport import ChannelAddress, InMemoryTransport

logger = logging.getLogger(__name__)

LLM_CHAT_COMPLETIONS_PATH = "llm/v1/chat/completions"
# Deprecated, still accepted for older clients.
OPENAI_CHAT_COMPLETIONS_PATH = "openai/v1/chat/completions"


def _random_padding() -> str:
    return "p" * random.randint(1, 35)


class StreamingRelay:
    """
    Bridges provider streams to transport channels.

    Args:
        provider_manager: Source of the configured provider.
        transport: Channel transport the messages are published on.
        pad_messages: Add random-length padding (`"p"`) to each delta message.
    """

    def __init__(
        self,
        provider_manager: ProviderManager,
        transport: InMemoryTransport,
        pad_messages: bool = True,
    ):
        self._provider_manager = provider_manager
        self._transport = transport
        self._pad_messages = pad_messages

    @property
    def transport(self) -> InMemoryTransport:
        return self._transport

    @staticmethod
    def subscribe_stream(path: str) -> bool:
        """Whether a subscription to `path` is served by this relay."""
        return path.startswith(LLM_CHAT_COMPLETIONS_PATH) or path.startswith(OPENAI_CHAT_COMPLETIONS_PATH)

    async def run_stream(self, address: ChannelAddress, data: Union[bytes, str, Dict[str, Any]]) -> None:
        """
        Run a streamed chat completion and publish it on `address`.

        The request is parsed from `data` and always streamed, whatever its
        `stream` flag says.

        Raises:
            ValidationError: If `address.path` is not a chat completions path.
        """
        if not self.subscribe_stream(address.path):
            raise ValidationError(f"unknown stream path: {address.path}")
        logger.debug(f"Running stream on {address}")
        try:
            if isinstance(data, (bytes, str)):
                try:
                    data = json.loads(data)
                except json.JSONDecodeError as e:
                    raise ValidationError(f"unable to parse request body: {e}") from e
            request = coerce_request(data).with_stream(True)
            provider = self._provider_manager.get_provider()
            stream = await provider.chat_completion_stream(request)
        except LLMBridgeError as e:
            logger.error(f"Error establishing chat completions stream on {address}: {e}")
            await self._publish_error(address, str(e))
            await self._transport.close_channel(address)
            return
        await self.relay(stream, address)

    async def relay(self, stream: ChatCompletionStream, address: ChannelAddress) -> bool:
        """
        Forward every event of `stream` to `address`, then the done marker.

        Returns:
            True if the stream completed, False if an error message was published instead.
        """
        try:
            async for event in stream:
                if event.done:
                    break
                message = event.to_message()
                if self._pad_messages:
                    message["p"] = _random_padding()
                await self._transport.publish(address, message)
            await self._transport.publish(address, StreamEvent.done_event().to_message())
            return True
        except asyncio.CancelledError:
            await stream.close()
            raise
        except LLMBridgeError as e:
            logger.error(f"Error while relaying stream on {address}: {e}")
            await self._publish_error(address, str(e))
            return False
        finally:
            await self._transport.close_channel(address)

    async def _publish_error(self, address: ChannelAddress, error: str) -> None:
        await self._transport.publish(address, {"error": error})
