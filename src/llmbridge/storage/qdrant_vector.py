# src/llmbridge/storage/qdrant_vector.py
"""
Qdrant vector store implementation for llmbridge.

Uses `qdrant_client.AsyncQdrantClient` over gRPC. Collections use cosine
distance. Search filters are translated from the Mongo-like filter syntax
into Qdrant `Filter` objects.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from qdrant_client import AsyncQdrantClient, models

from ..config.models import QdrantSettings
from ..exceptions import ValidationError, VectorStorageError
from ..models import SearchResult
from .base_vector import VectorStore, check_columns

logger = logging.getLogger(__name__)


def _match(value: Any) -> models.MatchValue:
    if not isinstance(value, str):
        raise ValidationError(f"unsupported filter type: {type(value).__name__}")
    return models.MatchValue(value=value)


def _sub_filters(operator: str, clauses: List[Any]) -> List[models.Filter]:
    filters = []
    for clause in clauses:
        if not isinstance(clause, dict):
            raise ValidationError(f"unsupported filter struct in {operator}: {type(clause).__name__}")
        filters.append(map_filter(clause))
    return filters


def map_filter(filter: Optional[Dict[str, Any]]) -> models.Filter:
    """
    Translates a Mongo-like filter into a Qdrant filter.

    `{"k": {"$eq": "v"}}` becomes a `must` condition, `{"k": {"$ne": "v"}}` a
    `must_not` condition. `{"$or": [...]}` puts each sub-filter in `should`,
    `{"$and": [...]}` puts each sub-filter in `must`.

    Raises:
        ValidationError: For any other operator, or a match value that is not a string.
    """
    must: List[Any] = []
    must_not: List[Any] = []
    should: List[Any] = []
    for key, value in (filter or {}).items():
        if isinstance(value, dict):
            for operator, operand in value.items():
                condition = models.FieldCondition(key=key, match=_match(operand))
                if operator == "$eq":
                    must.append(condition)
                elif operator == "$ne":
                    must_not.append(condition)
                else:
                    raise ValidationError(f"unsupported operator: {operator}")
        elif isinstance(value, list):
            if key == "$or":
                should.extend(_sub_filters(key, value))
            elif key == "$and":
                must.extend(_sub_filters(key, value))
            else:
                raise ValidationError(f"unsupported operator: {key}")
        else:
            raise ValidationError(f"unsupported filter struct: {type(value).__name__}")
    return models.Filter(must=must or None, must_not=must_not or None, should=should or None)


class QdrantVectorStore(VectorStore):
    """
    Read/write vector store backed by Qdrant.

    The API key is only sent over secure connections.
    """
    _client: Optional[AsyncQdrantClient] = None

    def __init__(self, settings: QdrantSettings):
        self.settings = settings
        host, _, port = settings.address.rpartition(":")
        if not host or not port.isdigit():
            host, port = settings.address, "6334"
        api_key = settings.api_key if settings.secure and settings.api_key else None
        if settings.api_key and not settings.secure:
            logger.warning("Qdrant API key is configured but the connection is not secure; the key is not sent.")
        self._client = AsyncQdrantClient(
            host=host,
            grpc_port=int(port),
            prefer_grpc=True,
            https=settings.secure,
            api_key=api_key,
            timeout=settings.timeout,
        )
        logger.info(f"Qdrant client configured for {host}:{port} (secure: {settings.secure}).")

    def _require_client(self) -> AsyncQdrantClient:
        if self._client is None:
            raise VectorStorageError("Qdrant client is closed.", operation="qdrant")
        return self._client

    async def health(self) -> None:
        client = self._require_client()
        try:
            await client.get_collections()
        except Exception as e:
            logger.error(f"Qdrant health check failed: {e}", exc_info=True)
            raise VectorStorageError(f"list collections: {e}", operation="qdrant") from e

    async def collection_exists(self, collection: str) -> bool:
        client = self._require_client()
        try:
            return await client.collection_exists(collection_name=collection)
        except Exception as e:
            logger.error(f"Failed to look up Qdrant collection '{collection}': {e}", exc_info=True)
            raise VectorStorageError(f"get collection {collection}: {e}", operation="qdrant") from e

    async def create_collection(self, collection: str, dimension: int) -> None:
        client = self._require_client()
        try:
            await client.create_collection(
                collection_name=collection,
                vectors_config=models.VectorParams(size=dimension, distance=models.Distance.COSINE),
            )
            logger.info(f"Created Qdrant collection '{collection}' with dimension {dimension}.")
        except Exception as e:
            logger.error(f"Failed to create Qdrant collection '{collection}': {e}", exc_info=True)
            raise VectorStorageError(f"create collection {collection}: {e}", operation="qdrant") from e

    async def point_exists(self, collection: str, point_id: int) -> bool:
        client = self._require_client()
        try:
            points = await client.retrieve(
                collection_name=collection,
                ids=[point_id],
                with_payload=False,
                with_vectors=False,
            )
        except Exception as e:
            raise VectorStorageError(f"get point {point_id}: {e}", operation="qdrant") from e
        return len(points) > 0

    async def upsert_columnar(
        self,
        collection: str,
        ids: Sequence[int],
        embeddings: Sequence[List[float]],
        payloads: Sequence[Dict[str, Any]],
    ) -> None:
        check_columns(ids, embeddings, payloads)
        if not ids:
            return
        client = self._require_client()
        try:
            await client.upsert(
                collection_name=collection,
                points=models.Batch(ids=list(ids), vectors=list(embeddings), payloads=list(payloads)),
                wait=True,
            )
            logger.debug(f"Upserted {len(ids)} points into Qdrant collection '{collection}'.")
        except Exception as e:
            logger.error(f"Failed to upsert {len(ids)} points into '{collection}': {e}", exc_info=True)
            raise VectorStorageError(f"upsert into {collection}: {e}", operation="qdrant") from e

    async def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        query_filter = map_filter(filter) if filter else None
        client = self._require_client()
        try:
            response = await client.query_points(
                collection_name=collection,
                query=vector,
                limit=top_k,
                query_filter=query_filter,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            logger.error(f"Qdrant search in '{collection}' failed: {e}", exc_info=True)
            raise VectorStorageError(f"search {collection}: {e}", operation="qdrant") from e
        return [SearchResult(payload=point.payload or {}, score=point.score) for point in response.points]

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.close()
                logger.info("Qdrant client closed.")
            finally:
                self._client = None
