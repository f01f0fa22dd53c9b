# src/llmbridge/storage/vectorapi_vector.py
"""
Read-only vector store backed by the Grafana vector API.

Endpoints:
    GET  {url}/v1/collections/{name}        collection lookup
    POST {url}/v1/collections/{name}/query  similarity search
    GET  {url}/healthz                      health
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.models import VectorAPIStoreSettings
from ..exceptions import ConfigError, DataError, VectorStorageError
from ..models import SearchResult
from .base_vector import ReadVectorStore

logger = logging.getLogger(__name__)

MAX_RESPONSE_BYTES = 1024 * 1024


async def _read_limited(resp: aiohttp.ClientResponse, limit: int) -> bytes:
    """Reads at most `limit` bytes of the body; anything beyond is discarded."""
    raw = bytearray()
    async for chunk in resp.content.iter_chunked(64 * 1024):
        raw.extend(chunk)
        if len(raw) >= limit:
            break
    return bytes(raw[:limit])


class VectorAPIStore(ReadVectorStore):
    """Search-only client for the Grafana vector API."""
    _session: Optional[aiohttp.ClientSession] = None

    def __init__(self, settings: VectorAPIStoreSettings):
        if not settings.url:
            raise ConfigError("the grafana/vectorapi store requires a URL")
        self.settings = settings
        self._url = settings.url.rstrip("/")
        logger.info(f"Vector API store configured for {self._url} (auth: {settings.auth_type or 'none'}).")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.settings.timeout))
        return self._session

    def _auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.settings.auth_type == "basic-auth":
            return aiohttp.BasicAuth(self.settings.basic_auth_user, self.settings.basic_auth_password)
        return None

    async def collection_exists(self, collection: str) -> bool:
        session = await self._get_session()
        try:
            async with session.get(f"{self._url}/v1/collections/{collection}", auth=self._auth()) as resp:
                if resp.status == 404:
                    return False
                if resp.status != 200:
                    raise VectorStorageError(f"get collection: status {resp.status}", operation="vectorapi")
                return True
        except asyncio.TimeoutError as e:
            raise VectorStorageError(f"get collection: timed out after {self.settings.timeout}s", operation="vectorapi") from e
        except aiohttp.ClientError as e:
            raise VectorStorageError(f"get collection: {e}", operation="vectorapi") from e

    async def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        session = await self._get_session()
        body = {"query": vector, "top_k": top_k, "filter": filter}
        try:
            async with session.post(
                f"{self._url}/v1/collections/{collection}/query", json=body, auth=self._auth()
            ) as resp:
                raw = await _read_limited(resp, MAX_RESPONSE_BYTES)
                if resp.status != 200:
                    raise VectorStorageError(f"post collections: status {resp.status}", operation="vectorapi")
        except asyncio.TimeoutError as e:
            raise VectorStorageError(f"post collections: timed out after {self.settings.timeout}s", operation="vectorapi") from e
        except aiohttp.ClientError as e:
            raise VectorStorageError(f"post collections: {e}", operation="vectorapi") from e

        try:
            points = json.loads(raw)
            return [
                SearchResult(payload=(point.get("payload") or {}).get("metadata") or {}, score=point["score"])
                for point in points
            ]
        except (json.JSONDecodeError, UnicodeDecodeError, AttributeError, KeyError, TypeError) as e:
            raise DataError(f"decode collections: {e}") from e

    async def health(self) -> None:
        session = await self._get_session()
        try:
            async with session.get(f"{self._url}/healthz", auth=self._auth()) as resp:
                if resp.status != 200:
                    raise VectorStorageError(f"get health: status {resp.status}", operation="vectorapi")
        except asyncio.TimeoutError as e:
            raise VectorStorageError(f"get health: timed out after {self.settings.timeout}s", operation="vectorapi") from e
        except aiohttp.ClientError as e:
            raise VectorStorageError(f"get health: {e}", operation="vectorapi") from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
