# src/llmbridge/__init__.py
"""
llmbridge: an LLM provider proxy with a streaming relay, plus vector search
and sync of Grafana metadata.
"""

from importlib.metadata import PackageNotFoundError, version

from .api import LLMBridge
from .client import LLMClient
from .exceptions import (CollectionNotFoundError, ConfigError, DataError,
                         EmbeddingError, LLMBridgeError, PluginNotInstalledError,
                         ProviderError, TransportError, UnknownCollectionError,
                         ValidationError, VectorStorageError)
from .models import (ChatCompletionRequest, ChatMessage, HealthCheckDetails,
                     Role, SearchRequest, SearchResponse, SearchResult,
                     StreamEvent)
from .streaming.transport import ChannelAddress

try:
    __version__ = version("llmbridge")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ChannelAddress",
    "ChatCompletionRequest",
    "ChatMessage",
    "CollectionNotFoundError",
    "ConfigError",
    "DataError",
    "EmbeddingError",
    "HealthCheckDetails",
    "LLMBridge",
    "LLMBridgeError",
    "LLMClient",
    "PluginNotInstalledError",
    "ProviderError",
    "Role",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "StreamEvent",
    "TransportError",
    "UnknownCollectionError",
    "ValidationError",
    "VectorStorageError",
    "__version__",
]
