# tests/vector/conftest.py
"""
In-memory doubles for the vector subsystem: a writable store, a deterministic
embedder and a dashboard source.
"""

import asyncio
import hashlib
from typing import Any, Dict, List, Optional, Sequence

import pytest

from llmbridge.embedding.base import BaseEmbedder
from llmbridge.exceptions import EmbeddingError, TransportError, VectorStorageError
from llmbridge.models import SearchResult, SourceItem
from llmbridge.storage.base_vector import VectorStore, check_columns
from llmbridge.vector.source import SourceMetadataProvider


class MemoryVectorStore(VectorStore):
    """Dictionary-backed store. Search scores are dot products."""

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Any]] = {}
        self.upsert_calls: List[List[int]] = []
        self.fail_upsert = False
        self.healthy = True

    async def collection_exists(self, collection: str) -> bool:
        return collection in self.collections

    async def create_collection(self, collection: str, dimension: int) -> None:
        self.collections[collection] = {"dimension": dimension, "points": {}}

    async def point_exists(self, collection: str, point_id: int) -> bool:
        return point_id in self.collections[collection]["points"]

    async def upsert_columnar(
        self,
        collection: str,
        ids: Sequence[int],
        embeddings: Sequence[List[float]],
        payloads: Sequence[Dict[str, Any]],
    ) -> None:
        check_columns(ids, embeddings, payloads)
        if self.fail_upsert:
            raise VectorStorageError("upsert rejected", operation="memory")
        self.upsert_calls.append(list(ids))
        points = self.collections[collection]["points"]
        for point_id, embedding, payload in zip(ids, embeddings, payloads):
            points[point_id] = (list(embedding), dict(payload))

    async def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        points = self.collections[collection]["points"].values()
        results = [
            SearchResult(payload=payload, score=sum(a * b for a, b in zip(vector, embedding)))
            for embedding, payload in points
        ]
        return sorted(results, key=lambda r: r.score, reverse=True)[:top_k]

    async def health(self) -> None:
        if not self.healthy:
            raise VectorStorageError("store unreachable", operation="memory")

    def point_ids(self, collection: str) -> set:
        return set(self.collections[collection]["points"])


class HashEmbedder(BaseEmbedder):
    """Deterministic embeddings derived from a SHA-256 of the text."""

    def __init__(self, dimension: int = 4) -> None:
        self.dimension = dimension
        self.calls: List[str] = []
        self.fail_on: List[str] = []
        self.delay = 0.0

    async def embed(self, model: str, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(model, "got non-2xx status from openai: 500")
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [digest[i] / 255.0 for i in range(self.dimension)]


class DashboardSource(SourceMetadataProvider):
    """Dashboards held in a dictionary keyed by uid."""

    def __init__(self) -> None:
        self.dashboards: Dict[str, Dict[str, Any]] = {}
        self.failing_uids: set = set()
        self.list_error: Optional[BaseException] = None

    def add(self, uid: str, title: str, description: str = "", panels: Optional[list] = None) -> None:
        model: Dict[str, Any] = {"uid": uid, "title": title, "description": description}
        if panels is not None:
            model["panels"] = panels
        self.dashboards[uid] = model

    async def list_items(self) -> List[SourceItem]:
        if self.list_error is not None:
            raise self.list_error
        return [SourceItem(uid=uid, title=model["title"]) for uid, model in self.dashboards.items()]

    async def item_by_uid(self, uid: str) -> Dict[str, Any]:
        if uid in self.failing_uids:
            raise TransportError("grafana-api", f"GET /api/dashboards/uid/{uid}: status 500")
        return dict(self.dashboards[uid])


@pytest.fixture
def memory_store():
    return MemoryVectorStore()


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def dashboards():
    source = DashboardSource()
    source.add("cpu", "CPU usage", "Node CPU", panels=[{"title": "Load", "description": "1m load"}])
    source.add("mem", "Memory", panels=[{"title": "RSS"}])
    source.add("net", "Network", "Traffic")
    return source
