# src/llmbridge/streaming/__init__.py
"""
Streaming package: stream handles, the pub/sub transport and subscriber reducers.

The relay itself lives in `llmbridge.streaming.relay` and is imported from
there, since it depends on the providers package.
"""

from .reducers import accumulate_content, accumulate_stream, content_events, fold_content
from .stream import ChatCompletionStream
from .transport import ChannelAddress, InMemoryTransport

__all__ = [
    "ChannelAddress",
    "ChatCompletionStream",
    "InMemoryTransport",
    "accumulate_content",
    "accumulate_stream",
    "content_events",
    "fold_content",
]
