# src/llmbridge/vector/service.py
"""
Vector service: semantic search over configured collections, plus ownership
of the embedder, the store and the background sync.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config.models import GrafanaAPISettings, VectorSettings
from ..embedding.base import BaseEmbedder
from ..embedding.manager import create_embedder
from ..exceptions import (CollectionNotFoundError, DataError,
                          UnknownCollectionError, ValidationError)
from ..models import SearchRequest, SearchResponse, SearchResult
from ..storage.base_vector import ReadVectorStore, WriteVectorStore
from ..storage.manager import create_vector_store
from .source import GrafanaDashboardSource, SourceMetadataProvider
from .sync import SyncEngine

logger = logging.getLogger(__name__)


class VectorService:
    """
    Searches collections and keeps the synced collection up to date.

    The service owns its embedder and store: `close()` stops the sync engine
    first, then closes the embedder and the store.
    """

    def __init__(
        self,
        settings: VectorSettings,
        embedder: BaseEmbedder,
        store: ReadVectorStore,
        close_store: Optional[Callable[[], Awaitable[None]]] = None,
        source: Optional[SourceMetadataProvider] = None,
    ):
        self.settings = settings
        self.embedder = embedder
        self.store = store
        self._close_store = close_store or store.close
        self.source = source
        self.sync_engine: Optional[SyncEngine] = None

    @classmethod
    def create(cls, settings: VectorSettings, source_settings: Optional[GrafanaAPISettings] = None) -> "VectorService":
        """
        Builds the service from configuration.

        Raises:
            ConfigError: If the embedder or store type is unknown or misconfigured.
        """
        embedder = create_embedder(settings.embed)
        store, close_store = create_vector_store(settings.store)
        source = GrafanaDashboardSource(source_settings) if source_settings is not None else None
        logger.info(f"Vector service created (embedder: {settings.embed.type}, store: {settings.store.type}).")
        return cls(settings, embedder, store, close_store, source)

    async def search(
        self,
        collection: str,
        query: str,
        top_k: int = 10,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        """
        Semantic search in `collection`.

        Returns:
            The store's results, unmodified, ordered by descending score.

        Raises:
            ValidationError: If the query is empty or the filter is unsupported.
            UnknownCollectionError: If the collection is not configured.
            CollectionNotFoundError: If the collection does not exist in the store.
            EmbeddingError: If the query cannot be embedded.
            DataError: If the query embedding has an unexpected dimension.
            VectorStorageError: If the store fails.
        """
        if not query:
            raise ValidationError("query is required")
        collection_settings = self.settings.collections.get(collection)
        if collection_settings is None:
            raise UnknownCollectionError(collection)
        if not await self.store.collection_exists(collection):
            raise CollectionNotFoundError(collection)

        logger.debug(f"Embedding query for collection '{collection}' with model '{collection_settings.model}'")
        vector = await self.embedder.embed(collection_settings.model, query)
        expected = collection_settings.dimension
        if expected is not None and len(vector) != expected:
            raise DataError(f"query embedding has dimension {len(vector)}, collection {collection} expects {expected}")

        results = await self.store.search(collection, vector, top_k, filter)
        logger.debug(f"Vector search in '{collection}' returned {len(results)} results")
        return results

    async def search_request(self, request: SearchRequest) -> SearchResponse:
        """`search` for a parsed request body."""
        results = await self.search(request.collection, request.query, request.top_k, request.filter)
        return SearchResponse(results=results)

    async def health(self) -> None:
        """Raises if the store or the embedder is unhealthy, checking the store first."""
        await self.store.health()
        await self.embedder.health(self.settings.model)

    def start_sync(self) -> Optional[SyncEngine]:
        """
        Starts the background sync of the configured collection.

        Returns:
            The running engine, or None when sync is disabled, no source is
            configured, or the store is read-only.
        """
        if not self.settings.sync.enabled:
            logger.info("Vector sync is disabled.")
            return None
        if self.source is None:
            logger.warning("No metadata source configured; vector sync not started.")
            return None
        if not isinstance(self.store, WriteVectorStore):
            logger.warning(f"Vector store '{self.settings.store.type}' is read-only; vector sync not started.")
            return None
        if self.sync_engine is None:
            sync = self.settings.sync
            collection_settings = self.settings.collections.get(sync.collection)
            self.sync_engine = SyncEngine(
                store=self.store,
                embedder=self.embedder,
                source=self.source,
                collection=sync.collection,
                model=collection_settings.model if collection_settings else self.settings.model,
                batch_size=sync.batch_size,
                interval_seconds=sync.interval_seconds,
                dimension=collection_settings.dimension if collection_settings else None,
            )
        self.sync_engine.start()
        return self.sync_engine

    async def close(self) -> None:
        """Stops the sync engine, then closes the embedder, the source and the store."""
        if self.sync_engine is not None:
            await self.sync_engine.stop()
        try:
            await self.embedder.close()
            if self.source is not None:
                await self.source.close()
        finally:
            await self._close_store()
        logger.info("Vector service closed.")
