# src/llmbridge/storage/manager.py
"""
Vector store factory for llmbridge.

Selects the backend from `[vector.store]` and hands back the store together
with its close callback.
"""

import logging
from typing import Awaitable, Callable, Dict, Tuple, Type

from ..config.models import StoreSettings
from ..exceptions import ConfigError
from .base_vector import ReadVectorStore
from .qdrant_vector import QdrantVectorStore
from .vectorapi_vector import VectorAPIStore

logger = logging.getLogger(__name__)

# --- Mapping from config store type string to class ---
VECTOR_STORE_MAP: Dict[str, Type[ReadVectorStore]] = {
    "qdrant": QdrantVectorStore,
    "grafana/vectorapi": VectorAPIStore,
}
# --- End Mapping ---

CloseFunc = Callable[[], Awaitable[None]]


def create_vector_store(settings: StoreSettings) -> Tuple[ReadVectorStore, CloseFunc]:
    """
    Instantiates the vector store named by `settings.type`.

    Returns:
        The store and an async callable that closes it. The caller owns the
        store and must await the callable on shutdown.

    Raises:
        ConfigError: If the type is unknown or its settings are invalid.
    """
    store_cls = VECTOR_STORE_MAP.get(settings.type)
    if store_cls is None:
        raise ConfigError(f"Unknown vector store type '{settings.type}'. Available: {list(VECTOR_STORE_MAP)}")
    if store_cls is QdrantVectorStore:
        store: ReadVectorStore = QdrantVectorStore(settings.qdrant)
    else:
        store = VectorAPIStore(settings.vectorapi)
    logger.info(f"Vector store '{settings.type}' initialized.")
    return store, store.close
