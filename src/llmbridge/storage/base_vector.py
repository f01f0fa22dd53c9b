# src/llmbridge/storage/base_vector.py
"""
Abstract Base Classes for vector store backends.

Reading (search) and writing (collection management and upserts) are split;
the Grafana vector API backend is read-only. Search
filters use a small Mongo-like syntax: `{"field": {"$eq": "v"}}`,
`{"field": {"$ne": "v"}}`, `{"$or": [...]}` and `{"$and": [...]}`.
"""

import abc
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import ValidationError
from ..models import SearchResult


class ReadVectorStore(abc.ABC):
    """Read side of a vector store."""

    @abc.abstractmethod
    async def collection_exists(self, collection: str) -> bool:
        """
        Whether the collection exists in the store.

        Raises:
            VectorStorageError: If the store cannot be queried. A missing
                                collection is `False`, not an error.
        """
        pass

    @abc.abstractmethod
    async def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        """
        Similarity search.

        Returns:
            At most `top_k` results ordered by descending score; higher scores
            are more similar.

        Raises:
            ValidationError: If the filter uses an unsupported operator or value type.
            VectorStorageError: If the search fails.
        """
        pass

    @abc.abstractmethod
    async def health(self) -> None:
        """Raises `VectorStorageError` if the store is unreachable."""
        pass

    async def close(self) -> None:
        pass


class WriteVectorStore(abc.ABC):
    """Write side of a vector store, used by the sync engine."""

    @abc.abstractmethod
    async def create_collection(self, collection: str, dimension: int) -> None:
        pass

    @abc.abstractmethod
    async def point_exists(self, collection: str, point_id: int) -> bool:
        pass

    @abc.abstractmethod
    async def upsert_columnar(
        self,
        collection: str,
        ids: Sequence[int],
        embeddings: Sequence[List[float]],
        payloads: Sequence[Dict[str, Any]],
    ) -> None:
        """
        Insert or replace a batch of points given as parallel columns.

        Raises:
            ValidationError: If the three columns differ in length.
            VectorStorageError: If the batch could not be written. The whole
                                batch is reported as failed.
        """
        pass


class VectorStore(ReadVectorStore, WriteVectorStore):
    """A store supporting both search and sync."""


def check_columns(ids: Sequence[Any], embeddings: Sequence[Any], payloads: Sequence[Any]) -> None:
    """Raises `ValidationError` unless the upsert columns have equal length."""
    if not len(ids) == len(embeddings) == len(payloads):
        raise ValidationError(
            f"upsert columns differ in length: {len(ids)} ids, {len(embeddings)} embeddings, "
            f"{len(payloads)} payloads"
        )
