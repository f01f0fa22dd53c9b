# src/llmbridge/vector/sync.py
"""
Periodic sync of source metadata (dashboards) into a vector collection.

Each item is projected into a small normalized payload, serialized as
canonical JSON and identified by the FNV-1a 64-bit hash of that JSON. An
unchanged item therefore maps to a point that already exists and is not
embedded again; an edited item maps to a new point. Points of edited or
deleted items are never removed.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..embedding.base import BaseEmbedder
from ..exceptions import DataError, LLMBridgeError
from ..logging_config import log_display
from ..models import SourceItem
from ..storage.base_vector import WriteVectorStore
from .source import SourceMetadataProvider

logger = logging.getLogger(__name__)

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
UINT64_MASK = 0xFFFFFFFFFFFFFFFF

DIMENSION_PROBE_TEXT = "test"
DEFAULT_SYNC_INTERVAL_SECONDS = 15 * 60
DEFAULT_BATCH_SIZE = 100
DEFAULT_STOP_GRACE_SECONDS = 60.0


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a hash of `data`."""
    value = FNV64_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV64_PRIME) & UINT64_MASK
    return value


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Serializes `payload` with sorted keys and no insignificant whitespace, as UTF-8."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def project_dashboard(item: SourceItem, model: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
    """
    Builds the payload embedded for a dashboard.

    The payload is `{"title", "description", "panels": [{"title", "description"}]}`.
    Missing fields are left out rather than defaulted. Panels that are not
    objects are skipped.

    Returns:
        The payload and the number of skipped panels.
    """
    payload: Dict[str, Any] = {}
    if item.title:
        payload["title"] = item.title
    if model.get("description") is not None:
        payload["description"] = model["description"]

    malformed = 0
    panels = model.get("panels")
    if isinstance(panels, list):
        projected = []
        for panel in panels:
            if not isinstance(panel, dict):
                malformed += 1
                continue
            projected.append({k: panel[k] for k in ("title", "description") if panel.get(k) is not None})
        payload["panels"] = projected
    return payload, malformed


class SyncReport(BaseModel):
    """Counters of one sync cycle."""
    items_seen: int = 0
    points_upserted: int = 0
    skipped_existing: int = 0
    failed_items: int = 0
    malformed_panels: int = 0
    batches_upserted: int = 0


async def interval_ticker(
    interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[int]:
    """
    Yields a tick number every `interval_seconds`.

    Stops early, without a final tick, once `cancel_event` is set.
    """
    tick = 0
    while True:
        if cancel_event is None:
            await asyncio.sleep(interval_seconds)
        else:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=interval_seconds)
                return
            except asyncio.TimeoutError:
                pass
        tick += 1
        yield tick


class SyncEngine:
    """
    Owns the background sync task of one collection.

    Args:
        store: Writable vector store.
        embedder: Embedder used for the probe and for every item.
        source: Where the items come from.
        collection: Target collection name.
        model: Embedding model bound to the collection.
        batch_size: Items embedded and upserted together.
        ticker: Async iterator whose items trigger a cycle. Defaults to
            `interval_ticker(interval_seconds, cancel_event)`.
        cancel_event: Setting it stops the loop between ticks.
        dimension: Expected embedding dimension, if known. Learned from the
            probe when the collection is created.
    """

    def __init__(
        self,
        store: WriteVectorStore,
        embedder: BaseEmbedder,
        source: SourceMetadataProvider,
        collection: str,
        model: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        ticker: Optional[AsyncIterator[Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        dimension: Optional[int] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.embedder = embedder
        self.source = source
        self.collection = collection
        self.model = model
        self.batch_size = batch_size
        self.cancel_event = cancel_event or asyncio.Event()
        self.interval_seconds = interval_seconds
        self._ticker = ticker
        self.dimension = dimension
        self.last_error: Optional[BaseException] = None
        self.last_report: Optional[SyncReport] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Starts the sync loop as a background task. Calling it again while running does nothing."""
        if self.is_running:
            return
        self.cancel_event.clear()
        self._task = asyncio.create_task(self.run(), name=f"vector-sync:{self.collection}")
        logger.info(f"Vector sync started for collection '{self.collection}'")

    async def stop(self, grace_period: float = DEFAULT_STOP_GRACE_SECONDS) -> None:
        """
        Signals the loop to stop and waits for the background task to end.

        A cycle in progress is allowed to finish; the loop exits before the
        next tick. The task is cancelled only if it is still running after
        `grace_period` seconds, e.g. with an injected ticker that does not
        watch the cancel event.
        """
        self.cancel_event.set()
        task = self._task
        if task is None:
            return
        done, _ = await asyncio.wait({task}, timeout=grace_period)
        if not done:
            logger.warning(
                f"Vector sync for '{self.collection}' did not stop within {grace_period}s, cancelling it"
            )
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif not task.cancelled() and task.exception() is not None:
            logger.error(f"Vector sync loop for '{self.collection}' failed", exc_info=task.exception())
        self._task = None
        logger.info(f"Vector sync stopped for collection '{self.collection}'")

    async def run(self) -> None:
        """Runs one cycle now, then one per tick until cancelled or the ticker ends."""
        logger.info("Running initial vector sync")
        await self.run_cycle()
        if self.cancel_event.is_set():
            return
        ticker = self._ticker if self._ticker is not None else interval_ticker(self.interval_seconds, self.cancel_event)
        async for _ in ticker:
            if self.cancel_event.is_set():
                break
            await self.run_cycle()
        logger.debug(f"Vector sync loop for '{self.collection}' finished")

    async def run_cycle(self) -> Optional[SyncReport]:
        """
        Runs `sync_once`, logging and recording any failure instead of raising it.

        Returns:
            The cycle's report, or None if the cycle failed.
        """
        try:
            report = await self.sync_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error syncing vector store collection '{self.collection}': {e}", exc_info=True)
            self.last_error = e
            return None
        self.last_error = None
        self.last_report = report
        return report

    async def _ensure_collection(self) -> None:
        if await self.store.collection_exists(self.collection):
            return
        vector = await self.embedder.embed(self.model, DIMENSION_PROBE_TEXT)
        self.dimension = len(vector)
        logger.info(f"Creating collection '{self.collection}' with dimension {self.dimension}")
        await self.store.create_collection(self.collection, self.dimension)

    async def sync_once(self) -> SyncReport:
        """
        One full pass over the source.

        Raises:
            LLMBridgeError: If the collection cannot be ensured, the listing
                fails, or a batch upsert fails. Per-item failures are counted
                in the report instead.
        """
        logger.info(f"Syncing items to vector collection '{self.collection}'")
        report = SyncReport()
        await self._ensure_collection()
        items = await self.source.list_items()
        logger.info(f"Fetched {len(items)} items to sync")

        for start in range(0, len(items), self.batch_size):
            batch = items[start:start + self.batch_size]
            ids: List[int] = []
            embeddings: List[List[float]] = []
            payloads: List[Dict[str, Any]] = []
            for item in batch:
                report.items_seen += 1
                prepared = await self._prepare_item(item, report)
                if prepared is None:
                    continue
                point_id, embedding, payload = prepared
                ids.append(point_id)
                embeddings.append(embedding)
                payloads.append(payload)

            if not ids:
                logger.debug("No new embeddings to add for this batch")
                continue
            logger.debug(f"Adding {len(ids)} embeddings to collection '{self.collection}'")
            await self.store.upsert_columnar(self.collection, ids, embeddings, payloads)
            report.points_upserted += len(ids)
            report.batches_upserted += 1

        if report.malformed_panels:
            logger.info(f"Skipped {report.malformed_panels} malformed panels during sync")
        log_display(
            logger,
            logging.INFO,
            f"Vector sync of '{self.collection}' finished: {report.points_upserted} points upserted, "
            f"{report.skipped_existing} unchanged, {report.failed_items} failed",
        )
        return report

    async def _prepare_item(
        self, item: SourceItem, report: SyncReport
    ) -> Optional[Tuple[int, List[float], Dict[str, Any]]]:
        try:
            model = await self.source.item_by_uid(item.uid)
        except LLMBridgeError as e:
            logger.warning(f"Unable to fetch item {item.uid}: {e}")
            report.failed_items += 1
            return None

        payload, malformed = project_dashboard(item, model)
        report.malformed_panels += malformed
        document = canonical_json(payload)
        point_id = fnv1a_64(document)

        try:
            if await self.store.point_exists(self.collection, point_id):
                logger.debug(f"Vector {point_id} already exists in '{self.collection}', skipping")
                report.skipped_existing += 1
                return None
        except LLMBridgeError as e:
            logger.warning(f"Error checking whether vector {point_id} exists in '{self.collection}': {e}")
            report.failed_items += 1
            return None

        try:
            embedding = await self.embedder.embed(self.model, document.decode("utf-8"))
            if self.dimension is not None and len(embedding) != self.dimension:
                raise DataError(
                    f"embedding for item {item.uid} has dimension {len(embedding)}, expected {self.dimension}"
                )
        except LLMBridgeError as e:
            logger.warning(f"Error getting embeddings for item {item.uid}: {e}")
            report.failed_items += 1
            return None
        return point_id, embedding, payload
