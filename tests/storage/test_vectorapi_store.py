# tests/storage/test_vectorapi_store.py
"""
Tests for the read-only Grafana vector API store and the store factory.
"""

import asyncio
import base64
from unittest.mock import patch

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from llmbridge.config.models import (StoreSettings, VectorAPIStoreSettings)
from llmbridge.exceptions import ConfigError, DataError, VectorStorageError
from llmbridge.models import SearchResult
from llmbridge.storage.base_vector import WriteVectorStore
from llmbridge.storage.manager import create_vector_store
from llmbridge.storage.vectorapi_vector import VectorAPIStore


async def _collection(request: web.Request) -> web.Response:
    if request.match_info["name"] in request.app["collections"]:
        return web.json_response({"name": request.match_info["name"]})
    return web.json_response({"detail": "not found"}, status=404)


async def _query(request: web.Request) -> web.Response:
    request.app["queries"].append(
        {"name": request.match_info["name"], "body": await request.json(),
         "authorization": request.headers.get("Authorization")}
    )
    status, body = request.app["query_response"]
    return web.Response(status=status, text=body, content_type="application/json")


async def _healthz(request: web.Request) -> web.Response:
    await asyncio.sleep(request.app["health_delay"])
    return web.Response(status=request.app["health_status"], text="ok")


@pytest_asyncio.fixture
async def vectorapi_server():
    app = web.Application()
    app["collections"] = {"grafana.core.dashboards"}
    app["queries"] = []
    app["query_response"] = (
        200,
        '[{"payload": {"metadata": {"title": "CPU"}}, "score": 0.8}, {"payload": {}, "score": 0.4}]',
    )
    app["health_status"] = 200
    app["health_delay"] = 0
    app.router.add_get("/v1/collections/{name}", _collection)
    app.router.add_post("/v1/collections/{name}/query", _query)
    app.router.add_get("/healthz", _healthz)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def store(vectorapi_server):
    vector_store = VectorAPIStore(
        VectorAPIStoreSettings(
            url=str(vectorapi_server.make_url("")),
            auth_type="basic-auth",
            basic_auth_user="grafana",
            basic_auth_password="secret",
        )
    )
    yield vector_store
    await vector_store.close()


class TestVectorAPIStore:
    @pytest.mark.asyncio
    async def test_collection_exists(self, store):
        assert await store.collection_exists("grafana.core.dashboards") is True
        assert await store.collection_exists("missing") is False

    @pytest.mark.asyncio
    async def test_search(self, store, vectorapi_server):
        results = await store.search("grafana.core.dashboards", [0.1, 0.2], 5, {"kind": {"$eq": "dashboard"}})
        assert results == [SearchResult(payload={"title": "CPU"}, score=0.8), SearchResult(payload={}, score=0.4)]
        query = vectorapi_server.app["queries"][0]
        assert query["body"] == {"query": [0.1, 0.2], "top_k": 5, "filter": {"kind": {"$eq": "dashboard"}}}
        assert query["authorization"] == "Basic " + base64.b64encode(b"grafana:secret").decode()

    @pytest.mark.asyncio
    async def test_search_error_status(self, store, vectorapi_server):
        vectorapi_server.app["query_response"] = (500, "{}")
        with pytest.raises(VectorStorageError, match="status 500") as excinfo:
            await store.search("grafana.core.dashboards", [0.1], 1)
        assert excinfo.value.operation == "vectorapi"

    @pytest.mark.asyncio
    async def test_search_undecodable(self, store, vectorapi_server):
        vectorapi_server.app["query_response"] = (200, "[{]")
        with pytest.raises(DataError):
            await store.search("grafana.core.dashboards", [0.1], 1)

    @pytest.mark.asyncio
    async def test_search_truncated_response_is_undecodable(self, store, vectorapi_server):
        padding = " " * (1024 * 1024)
        vectorapi_server.app["query_response"] = (200, padding + '[{"payload": {}, "score": 1}]')
        with pytest.raises(DataError):
            await store.search("grafana.core.dashboards", [0.1], 1)

    @pytest.mark.asyncio
    async def test_health(self, store, vectorapi_server):
        await store.health()
        vectorapi_server.app["health_status"] = 503
        with pytest.raises(VectorStorageError):
            await store.health()

    @pytest.mark.asyncio
    async def test_health_timeout(self, store, vectorapi_server):
        vectorapi_server.app["health_delay"] = 2
        store.settings.timeout = 0.2
        with pytest.raises(VectorStorageError, match="get health: timed out after 0.2s") as excinfo:
            await store.health()
        assert excinfo.value.operation == "vectorapi"

    def test_read_only(self):
        assert not isinstance(VectorAPIStore(VectorAPIStoreSettings(url="http://x")), WriteVectorStore)

    def test_requires_url(self):
        with pytest.raises(ConfigError):
            VectorAPIStore(VectorAPIStoreSettings())


class TestCreateVectorStore:
    @pytest.mark.asyncio
    async def test_vectorapi(self):
        store, close = create_vector_store(
            StoreSettings(type="grafana/vectorapi", vectorapi=VectorAPIStoreSettings(url="http://vectorapi"))
        )
        assert isinstance(store, VectorAPIStore)
        await close()

    def test_qdrant(self):
        with patch("llmbridge.storage.qdrant_vector.AsyncQdrantClient") as client_cls:
            store, close = create_vector_store(StoreSettings())
        assert type(store).__name__ == "QdrantVectorStore"
        assert client_cls.call_args.kwargs["host"] == "localhost"
        assert close == store.close

    def test_unknown(self):
        with pytest.raises(ConfigError, match="Unknown vector store type"):
            create_vector_store(StoreSettings(type="pinecone"))
