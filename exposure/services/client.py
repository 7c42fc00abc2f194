from __future__ import annotations

import logging
import os
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from exposure.api.schemas import GraphSnapshot, SearchIndexEntry
from exposure.config import fetch_timeout_seconds
from exposure.services.ids import normalize_node_id
from exposure.services.shared.http import FetchError, fetch_json

logger = logging.getLogger(__name__)


class SnapshotClient:
    """HTTP client for the snapshot API, used by the navigator and drilldown router."""

    def __init__(self, base_url: str | None = None, timeout_seconds: float | None = None) -> None:
        self.base_url = (base_url or os.getenv("API_BASE_URL", "http://localhost:8001")).rstrip("/")
        self.timeout_seconds = timeout_seconds

    def graph_url(self, node_id: str, **params: str | None) -> str:
        query = urlencode({key: value for key, value in params.items() if value})
        url = f"{self.base_url}/graph/{quote(normalize_node_id(node_id), safe=':')}"
        return f"{url}?{query}" if query else url

    def fetch_snapshot(self, node_id: str, chain: str | None = None, protocol: str | None = None) -> GraphSnapshot | None:
        url = self.graph_url(node_id, protocol=protocol, chain=chain)
        try:
            payload = fetch_json(url, timeout_seconds=self.timeout_seconds)
        except FetchError as exc:
            logger.info("Snapshot fetch failed for %s: %s", node_id, exc)
            return None
        return GraphSnapshot.model_validate(payload)

    def snapshot_exists(
        self,
        node_id: str,
        protocol: str | None = None,
        chain: str | None = None,
        origin: str | None = None,
    ) -> bool:
        url = self.graph_url(node_id, protocol=protocol, chain=chain, origin=origin)
        timeout = fetch_timeout_seconds() if self.timeout_seconds is None else self.timeout_seconds
        try:
            with urlopen(Request(url, method="HEAD"), timeout=timeout) as resp:
                return 200 <= resp.status < 300
        except HTTPError:
            return False
        except (URLError, TimeoutError) as exc:
            logger.debug("Snapshot probe for %s unreachable: %s", node_id, exc)
            return False

    def fetch_search_index(self) -> list[SearchIndexEntry]:
        payload = fetch_json(f"{self.base_url}/search-index", timeout_seconds=self.timeout_seconds)
        return [SearchIndexEntry.model_validate(item) for item in payload or []]

    def graph_root_ids(self) -> frozenset[str] | None:
        """Normalized ids of every published root, or None when the index is unavailable."""
        try:
            entries = self.fetch_search_index()
        except FetchError as exc:
            logger.warning("Search index unavailable, terminal detection disabled: %s", exc)
            return None
        return frozenset(normalize_node_id(entry.node_id) for entry in entries)
