# src/llmbridge/streaming/stream.py
"""
Stream handle returned by streamed chat completions.

The handle turns an async iterator of raw provider chunks into an ordered
sequence of `StreamEvent`s. A read after the terminal event returns `None`
(end of stream). A provider failure while streaming is raised from the next
read instead of ending the stream silently.
"""

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator, Deque, Dict, Optional

from ..exceptions import LLMBridgeError, ProviderError
from ..models import StreamEvent

logger = logging.getLogger(__name__)


class ChatCompletionStream:
    """
    Ordered, single-consumer view over a provider stream.

    Usage:
        stream = await provider.chat_completion_stream(request)
        while (event := await stream.recv()) is not None:
            ...

    or simply ``async for event in stream``.
    """

    def __init__(self, chunks: AsyncIterator[Dict[str, Any]], provider_name: str = "unknown"):
        self._chunks = chunks
        self._provider_name = provider_name
        self._pending: Deque[StreamEvent] = deque()
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished and not self._pending

    async def recv(self) -> Optional[StreamEvent]:
        """
        Read the next event.

        Returns:
            The next `StreamEvent`, or None once the stream has ended. Reading
            past the end keeps returning None.

        Raises:
            ProviderError: If the provider failed mid-stream. The stream is
                finished afterwards.
        """
        while not self._pending:
            if self._finished:
                return None
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._finished = True
                return None
            except asyncio.CancelledError:
                self._finished = True
                raise
            except LLMBridgeError:
                self._finished = True
                await self.close()
                raise
            except Exception as e:
                self._finished = True
                await self.close()
                logger.error(f"Stream from provider '{self._provider_name}' failed: {e}", exc_info=True)
                raise ProviderError(self._provider_name, f"stream error: {e}") from e
            self._pending.extend(StreamEvent.from_chunk(chunk))

        event = self._pending.popleft()
        if event.done:
            self._finished = True
            self._pending.clear()
            await self.close()
        return event

    def __aiter__(self) -> "ChatCompletionStream":
        return self

    async def __anext__(self) -> StreamEvent:
        event = await self.recv()
        if event is None:
            raise StopAsyncIteration
        return event

    async def close(self) -> None:
        """Close the upstream iterator if it supports it."""
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except RuntimeError as e:
            # Closing a generator that is still running raises; the stream is finished anyway.
            logger.debug(f"Ignoring error while closing provider stream: {e}")
