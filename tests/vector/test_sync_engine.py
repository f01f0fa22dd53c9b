# tests/vector/test_sync_engine.py
"""
Tests for the vector sync engine.

Covers:
- FNV-1a hashing and canonical JSON, which make point ids content-addressed
- Dashboard projection
- Collection creation from the probe embedding
- Idempotent re-syncs, batching and per-item failures
- Batch failures aborting a cycle and the loop surviving failed or crashed cycles
- Embedding timeouts counted as per-item failures
- The background task lifecycle, with stops waiting for the cycle in progress
"""

import asyncio
import logging

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from llmbridge.config.models import EmbedderConnectionSettings
from llmbridge.embedding.openai import OpenAIEmbedder
from llmbridge.exceptions import VectorStorageError
from llmbridge.models import SourceItem
from llmbridge.vector.sync import (DIMENSION_PROBE_TEXT, SyncEngine,
                                   canonical_json, fnv1a_64, interval_ticker,
                                   project_dashboard)

COLLECTION = "grafana.core.dashboards"


def _engine(memory_store, embedder, dashboards, **kwargs):
    return SyncEngine(memory_store, embedder, dashboards, COLLECTION, "text-embedding-ada-002", **kwargs)


async def _ticks(count):
    for tick in range(count):
        yield tick


async def _slow_embeddings(request: web.Request) -> web.Response:
    await asyncio.sleep(2)
    return web.json_response({"data": [{"embedding": [0.1, 0.2, 0.3, 0.4]}]})


@pytest_asyncio.fixture
async def slow_embedder():
    app = web.Application()
    app.router.add_post("/v1/embeddings", _slow_embeddings)
    server = TestServer(app)
    await server.start_server()
    embedder = OpenAIEmbedder(
        EmbedderConnectionSettings(url=str(server.make_url("")).rstrip("/"), timeout=0.2)
    )
    yield embedder
    await embedder.close()
    await server.close()


class TestHashing:
    def test_fnv1a_64_known_vectors(self):
        assert fnv1a_64(b"") == 0xCBF29CE484222325
        assert fnv1a_64(b"a") == 0xAF63DC4C8601EC8C
        assert fnv1a_64(b"foobar") == 0x85944171F73967E8

    def test_canonical_json_sorts_keys(self):
        assert canonical_json({"b": 1, "a": {"d": 2, "c": "é"}}) == '{"a":{"c":"é","d":2},"b":1}'.encode("utf-8")

    def test_same_content_same_id(self):
        first = canonical_json({"title": "CPU", "panels": []})
        second = canonical_json({"panels": [], "title": "CPU"})
        assert fnv1a_64(first) == fnv1a_64(second)


class TestProjectDashboard:
    def test_projection(self):
        payload, malformed = project_dashboard(
            SourceItem(uid="cpu", title="CPU usage"),
            {
                "title": "ignored",
                "description": "Node CPU",
                "panels": [{"title": "Load", "description": "1m", "type": "graph"}, {"title": "Idle"}],
                "version": 3,
            },
        )
        assert payload == {
            "title": "CPU usage",
            "description": "Node CPU",
            "panels": [{"title": "Load", "description": "1m"}, {"title": "Idle"}],
        }
        assert malformed == 0

    def test_malformed_panels_are_skipped(self):
        payload, malformed = project_dashboard(SourceItem(uid="x", title="X"), {"panels": [{"title": "ok"}, "bad", 3]})
        assert payload["panels"] == [{"title": "ok"}]
        assert malformed == 2

    def test_missing_fields_left_out(self):
        payload, _ = project_dashboard(SourceItem(uid="x"), {})
        assert payload == {}


class TestSyncOnce:
    """One pass over the source."""

    @pytest.mark.asyncio
    async def test_creates_collection_with_probe_dimension(self, memory_store, embedder, dashboards):
        engine = _engine(memory_store, embedder, dashboards)
        report = await engine.sync_once()
        assert embedder.calls[0] == DIMENSION_PROBE_TEXT
        assert memory_store.collections[COLLECTION]["dimension"] == embedder.dimension
        assert engine.dimension == embedder.dimension
        assert report.points_upserted == 3
        assert report.items_seen == 3

    @pytest.mark.asyncio
    async def test_existing_collection_is_not_probed(self, memory_store, embedder, dashboards):
        await memory_store.create_collection(COLLECTION, embedder.dimension)
        await _engine(memory_store, embedder, dashboards).sync_once()
        assert DIMENSION_PROBE_TEXT not in embedder.calls

    @pytest.mark.asyncio
    async def test_point_ids_are_content_hashes(self, memory_store, embedder, dashboards):
        await _engine(memory_store, embedder, dashboards).sync_once()
        payload, _ = project_dashboard(SourceItem(uid="net", title="Network"), dashboards.dashboards["net"])
        point_id = fnv1a_64(canonical_json(payload))
        assert point_id in memory_store.point_ids(COLLECTION)
        assert memory_store.collections[COLLECTION]["points"][point_id][1] == payload

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, memory_store, embedder, dashboards):
        engine = _engine(memory_store, embedder, dashboards)
        await engine.sync_once()
        ids = memory_store.point_ids(COLLECTION)
        calls = len(embedder.calls)

        report = await engine.sync_once()
        assert report.points_upserted == 0
        assert report.skipped_existing == 3
        assert memory_store.point_ids(COLLECTION) == ids
        assert len(embedder.calls) == calls
        assert len(memory_store.upsert_calls) == 1

    @pytest.mark.asyncio
    async def test_edited_dashboard_adds_point(self, memory_store, embedder, dashboards):
        engine = _engine(memory_store, embedder, dashboards)
        await engine.sync_once()
        old_ids = memory_store.point_ids(COLLECTION)

        dashboards.dashboards["net"]["description"] = "Traffic in and out"
        report = await engine.sync_once()
        assert report.points_upserted == 1
        new_ids = memory_store.point_ids(COLLECTION)
        assert old_ids < new_ids
        assert len(new_ids) == 4

    @pytest.mark.asyncio
    async def test_batching(self, memory_store, embedder, dashboards):
        dashboards.add("disk", "Disk")
        dashboards.add("gpu", "GPU")
        report = await _engine(memory_store, embedder, dashboards, batch_size=2).sync_once()
        assert [len(ids) for ids in memory_store.upsert_calls] == [2, 2, 1]
        assert report.batches_upserted == 3

    @pytest.mark.asyncio
    async def test_fetch_failure_skips_item(self, memory_store, embedder, dashboards):
        dashboards.failing_uids.add("mem")
        report = await _engine(memory_store, embedder, dashboards).sync_once()
        assert report.failed_items == 1
        assert report.points_upserted == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_skips_item(self, memory_store, embedder, dashboards):
        embedder.fail_on.append("Network")
        report = await _engine(memory_store, embedder, dashboards).sync_once()
        assert report.failed_items == 1
        assert report.points_upserted == 2

    @pytest.mark.asyncio
    async def test_embedding_timeout_skips_item(self, memory_store, slow_embedder, dashboards):
        await memory_store.create_collection(COLLECTION, 4)
        for uid in ("mem", "net"):
            del dashboards.dashboards[uid]
        report = await _engine(memory_store, slow_embedder, dashboards).sync_once()
        assert report.items_seen == 1
        assert report.failed_items == 1
        assert memory_store.upsert_calls == []

    @pytest.mark.asyncio
    async def test_dimension_mismatch_skips_item(self, memory_store, embedder, dashboards):
        await memory_store.create_collection(COLLECTION, 8)
        report = await _engine(memory_store, embedder, dashboards, dimension=8).sync_once()
        assert report.failed_items == 3
        assert memory_store.upsert_calls == []

    @pytest.mark.asyncio
    async def test_malformed_panels_counted(self, memory_store, embedder, dashboards):
        dashboards.add("odd", "Odd", panels=[None, {"title": "fine"}])
        report = await _engine(memory_store, embedder, dashboards).sync_once()
        assert report.malformed_panels == 1
        assert report.points_upserted == 4

    @pytest.mark.asyncio
    async def test_batch_failure_aborts_cycle(self, memory_store, embedder, dashboards):
        memory_store.fail_upsert = True
        with pytest.raises(VectorStorageError):
            await _engine(memory_store, embedder, dashboards).sync_once()

    @pytest.mark.asyncio
    async def test_empty_source(self, memory_store, embedder, dashboards):
        dashboards.dashboards.clear()
        report = await _engine(memory_store, embedder, dashboards).sync_once()
        assert report.items_seen == 0
        assert memory_store.upsert_calls == []


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_run_cycle_records_failure(self, memory_store, embedder, dashboards):
        dashboards.list_error = RuntimeError("unexpected")
        engine = _engine(memory_store, embedder, dashboards)
        assert await engine.run_cycle() is None
        assert isinstance(engine.last_error, RuntimeError)

        dashboards.list_error = None
        report = await engine.run_cycle()
        assert report.points_upserted == 3
        assert engine.last_error is None
        assert engine.last_report is report

    @pytest.mark.asyncio
    async def test_run_survives_failed_cycles(self, memory_store, embedder, dashboards):
        memory_store.fail_upsert = True
        engine = _engine(memory_store, embedder, dashboards, ticker=_ticks(2))
        await engine.run()
        assert isinstance(engine.last_error, VectorStorageError)

    @pytest.mark.asyncio
    async def test_run_recovers_from_unexpected_crash(self, memory_store, embedder, dashboards, caplog):
        list_items = dashboards.list_items
        attempts = []

        async def crash_once():
            attempts.append(1)
            if len(attempts) == 1:
                raise ZeroDivisionError("division by zero")
            return await list_items()

        dashboards.list_items = crash_once
        caplog.set_level(logging.ERROR, logger="llmbridge.vector.sync")
        engine = _engine(memory_store, embedder, dashboards, ticker=_ticks(1))
        await engine.run()

        assert len(attempts) == 2
        assert engine.last_error is None
        assert engine.last_report.points_upserted == 3
        crashes = [r for r in caplog.records if r.exc_info and r.exc_info[0] is ZeroDivisionError]
        assert len(crashes) == 1
        assert COLLECTION in crashes[0].getMessage()

    @pytest.mark.asyncio
    async def test_run_one_cycle_per_tick(self, memory_store, embedder, dashboards):
        engine = _engine(memory_store, embedder, dashboards, ticker=_ticks(2))
        await engine.run()
        probe_and_items = 1 + 3
        assert len(embedder.calls) == probe_and_items
        assert engine.last_report.skipped_existing == 3

    @pytest.mark.asyncio
    async def test_start_and_stop(self, memory_store, embedder, dashboards):
        engine = _engine(memory_store, embedder, dashboards, interval_seconds=3600)
        engine.start()
        assert engine.is_running
        engine.start()
        for _ in range(100):
            if engine.last_report is not None:
                break
            await asyncio.sleep(0)
        assert engine.last_report.points_upserted == 3

        await engine.stop()
        assert not engine.is_running
        assert engine.cancel_event.is_set()

    @pytest.mark.asyncio
    async def test_stop_lets_cycle_in_progress_finish(self, memory_store, embedder, dashboards):
        dashboards.add("disk", "Disk")
        dashboards.add("gpu", "GPU")
        embedder.delay = 0.05
        engine = _engine(memory_store, embedder, dashboards, interval_seconds=3600)
        engine.start()
        await asyncio.sleep(0.12)
        assert engine.last_report is None

        await engine.stop()
        assert not engine.is_running
        assert engine.last_report.points_upserted == 5
        assert memory_store.upsert_calls and len(memory_store.upsert_calls[0]) == 5

    @pytest.mark.asyncio
    async def test_stop_cancels_loop_stuck_in_ticker(self, memory_store, embedder, dashboards, caplog):
        async def never_ticks():
            await asyncio.Event().wait()
            yield 0

        engine = _engine(memory_store, embedder, dashboards, ticker=never_ticks())
        engine.start()
        for _ in range(100):
            if engine.last_report is not None:
                break
            await asyncio.sleep(0)
        assert engine.last_report is not None

        caplog.set_level(logging.WARNING, logger="llmbridge.vector.sync")
        await engine.stop(grace_period=0.05)
        assert not engine.is_running
        assert any("cancelling it" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, memory_store, embedder, dashboards):
        engine = _engine(memory_store, embedder, dashboards, interval_seconds=3600)
        engine.start()
        await engine.stop()
        engine.start()
        assert engine.is_running
        assert not engine.cancel_event.is_set()
        await engine.stop()

    def test_batch_size_must_be_positive(self, memory_store, embedder, dashboards):
        with pytest.raises(ValueError):
            _engine(memory_store, embedder, dashboards, batch_size=0)


class TestIntervalTicker:
    @pytest.mark.asyncio
    async def test_ticks(self):
        ticker = interval_ticker(0.001)
        assert await ticker.__anext__() == 1
        assert await ticker.__anext__() == 2
        await ticker.aclose()

    @pytest.mark.asyncio
    async def test_cancel_event_stops_ticker(self):
        cancel_event = asyncio.Event()
        cancel_event.set()
        assert [tick async for tick in interval_ticker(3600, cancel_event)] == []
