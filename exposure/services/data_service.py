from __future__ import annotations

import logging
import os
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from exposure.api.schemas import GraphSnapshot, SearchIndexEntry, TreemapMetadata, TreemapResponse
from exposure.config import output_dir
from exposure.services.graph import find_node, resolve_root_node
from exposure.services.ids import normalize_node_id
from exposure.services.search_index import SearchFilters, filter_search_index, search_facets
from exposure.services.shared.cache_store import QueryCache
from exposure.services.snapshot_io import SEARCH_INDEX_FILENAME, read_json_file, read_snapshot
from exposure.services.treemap import build_treemap_tiles, min_percent_for_area

logger = logging.getLogger(__name__)


class SnapshotNotFoundError(LookupError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"No snapshot for '{node_id}'")
        self.node_id = node_id


class SnapshotRepository:
    """Flat-file snapshot store laid out as ``<root>/<protocol>/<root id>.json``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _protocol_dirs(self, protocol_hint: str | None) -> list[Path]:
        if not self.root.is_dir():
            return []
        dirs = sorted(path for path in self.root.iterdir() if path.is_dir())
        if protocol_hint:
            hint = protocol_hint.strip().lower()
            dirs.sort(key=lambda path: path.name != hint)
        return dirs

    def find_path(self, node_id: str, protocol: str | None = None) -> Path | None:
        filename = f"{normalize_node_id(node_id)}.json"
        for directory in self._protocol_dirs(protocol):
            candidate = directory / filename
            if candidate.is_file():
                return candidate
        return None

    def load(self, node_id: str, protocol: str | None = None) -> GraphSnapshot:
        path = self.find_path(node_id, protocol)
        if path is None:
            raise SnapshotNotFoundError(node_id)
        return read_snapshot(path)

    def load_search_index(self) -> list[SearchIndexEntry]:
        path = self.root / SEARCH_INDEX_FILENAME
        if not path.is_file():
            return []
        return [SearchIndexEntry.model_validate(item) for item in read_json_file(path)]


class SnapshotService:
    """Cached read side over persisted snapshots and the search index."""

    def __init__(self, repository: SnapshotRepository | None = None, cache: QueryCache | None = None) -> None:
        self.repository = repository or SnapshotRepository(output_dir())
        self.cache = cache or QueryCache(
            ttl_seconds=float(os.getenv("API_CACHE_TTL_SECONDS", "30")),
            max_entries=int(os.getenv("API_CACHE_MAX_ENTRIES", "256")),
        )
        self._log_slow_requests = os.getenv("API_LOG_SLOW_REQUESTS", "0") == "1"
        self._slow_request_threshold_ms = float(os.getenv("API_SLOW_REQUEST_THRESHOLD_MS", "150"))

    def close(self) -> None:
        self.cache.invalidate()

    def warmup(self) -> None:
        """Load the search index and every indexed snapshot into the cache."""
        started = time.perf_counter()
        entries = self.get_search_index()
        failures = 0
        for entry in entries:
            try:
                self.get_snapshot(entry.node_id, protocol=entry.protocol)
            except (SnapshotNotFoundError, OSError, ValueError) as exc:
                failures += 1
                logger.warning("Warmup failed for %s: %s", entry.node_id, exc)
        logger.info(
            "Warmup complete: %s snapshots, %s failures in %.2fs",
            len(entries),
            failures,
            time.perf_counter() - started,
        )

    def _log_if_slow(self, started: float, label: str, node_id: str) -> None:
        if not self._log_slow_requests:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if elapsed_ms >= self._slow_request_threshold_ms:
            logger.warning("Slow %s %.2fms id=%s", label, elapsed_ms, node_id)

    def get_snapshot(self, node_id: str, protocol: str | None = None, chain: str | None = None) -> GraphSnapshot:
        started = time.perf_counter()
        key = normalize_node_id(node_id)
        snapshot = self.cache.cached(
            f"snapshot:{(protocol or '').lower()}:{key}",
            lambda: self.repository.load(key, protocol),
        )
        self._log_if_slow(started, "snapshot", key)
        return snapshot

    def snapshot_exists(self, node_id: str, protocol: str | None = None) -> bool:
        key = normalize_node_id(node_id)
        if self.cache.get(f"snapshot:{(protocol or '').lower()}:{key}") is not None:
            return True
        return self.repository.find_path(key, protocol) is not None

    def get_search_index(self) -> list[SearchIndexEntry]:
        # Empty lists are cached too; only None is skipped by the cache.
        return self.cache.cached("search-index", self.repository.load_search_index)

    def search(self, filters: SearchFilters) -> dict[str, Any]:
        entries = self.get_search_index()
        results = filter_search_index(entries, filters)
        return {
            "results": [entry.to_wire() for entry in results],
            "total": len(results),
            "facets": search_facets(entries, protocol=filters.protocol, chain=filters.chain),
        }

    def graph_root_ids(self) -> frozenset[str]:
        return frozenset(normalize_node_id(entry.node_id) for entry in self.get_search_index())

    def get_treemap(
        self,
        node_id: str,
        focus: str | None = None,
        width: float = 0,
        height: float = 0,
        protocol: str | None = None,
        chain: str | None = None,
        others: list[str] | None = None,
    ) -> TreemapResponse:
        snapshot = self.get_snapshot(node_id, protocol=protocol, chain=chain)
        root = resolve_root_node(snapshot, node_id, chain)
        if root is None:
            raise SnapshotNotFoundError(node_id)
        focus_node = find_node(snapshot, focus) or root
        tiles = build_treemap_tiles(
            snapshot,
            focus_node.id,
            width,
            height,
            graph_root_ids=self.graph_root_ids(),
            others_children_ids=others,
        )
        return TreemapResponse(
            metadata=TreemapMetadata(
                node_id=root.id,
                focus=focus_node.id,
                min_percent=None if others is not None else min_percent_for_area(width, height),
                generated_at=datetime.now(UTC),
            ),
            data=[tile.to_wire() for tile in tiles],
        )
