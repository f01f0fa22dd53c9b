# src/llmbridge/vector/source.py
"""
Sources of the metadata that the sync engine embeds.

`GrafanaDashboardSource` lists dashboards through the Grafana HTTP API and
fetches each dashboard's JSON model.
"""

import abc
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.models import GrafanaAPISettings
from ..exceptions import DataError, TransportError
from ..models import SourceItem

logger = logging.getLogger(__name__)


class SourceMetadataProvider(abc.ABC):
    """Lists items to sync and fetches their full models."""

    @abc.abstractmethod
    async def list_items(self) -> List[SourceItem]:
        """Returns the items to sync, in listing order."""
        pass

    @abc.abstractmethod
    async def item_by_uid(self, uid: str) -> Dict[str, Any]:
        """
        Returns the full model of one item.

        May fail for a single item; the sync engine logs the failure and
        skips that item.
        """
        pass

    async def close(self) -> None:
        pass


class GrafanaDashboardSource(SourceMetadataProvider):
    """Dashboards of a Grafana instance, read with a service account token."""
    _session: Optional[aiohttp.ClientSession] = None

    def __init__(self, settings: GrafanaAPISettings):
        self.settings = settings
        self._url = settings.grafana_url.rstrip("/")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the aiohttp session."""
        if self._session is None or self._session.closed:
            headers = {"Authorization": f"Bearer {self.settings.api_key}"} if self.settings.api_key else None
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout),
            )
        return self._session

    async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        session = await self._get_session()
        url = self._url + path
        try:
            async with session.get(url, params=params) as resp:
                body = await resp.read()
                if resp.status != 200:
                    raise TransportError("grafana-api", f"GET {path}: status {resp.status}")
        except asyncio.TimeoutError as e:
            raise TransportError("grafana-api", f"GET {path}: timed out after {self.settings.timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError("grafana-api", f"GET {path}: {e}") from e
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DataError(f"decode response of GET {path}: {e}") from e

    async def list_items(self) -> List[SourceItem]:
        hits = await self._get_json("/api/search", params={"type": "dash-db"})
        if not isinstance(hits, list):
            raise DataError("dashboard search did not return a list")
        items = [SourceItem(uid=hit["uid"], title=hit.get("title") or "") for hit in hits if hit.get("uid")]
        logger.info(f"Fetched {len(items)} dashboards from {self._url}")
        return items

    async def item_by_uid(self, uid: str) -> Dict[str, Any]:
        body = await self._get_json(f"/api/dashboards/uid/{uid}")
        dashboard = body.get("dashboard") if isinstance(body, dict) else None
        if not isinstance(dashboard, dict):
            raise DataError(f"dashboard {uid} has no model")
        return dashboard

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
