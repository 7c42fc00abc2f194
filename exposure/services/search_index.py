from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from exposure.api.schemas import SearchIndexEntry
from exposure.services.formatters import apy_to_percent
from exposure.services.ids import DEFAULT_CHAIN, ID_SEPARATOR, canonical_protocol_key
from exposure.services.logos import is_token_like, is_upper_token_like
from exposure.services.snapshot_io import SEARCH_INDEX_FILENAME, read_json_file, write_json_file

logger = logging.getLogger(__name__)

ALL = "all"


def _number_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _string_or_empty(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def infer_logo_keys(snapshot: dict[str, Any], root: dict[str, Any]) -> list[str]:
    """Logo keys for a root: explicit keys, then its own symbol, then the heaviest leaf symbol."""
    explicit = root.get("logoKeys")
    if isinstance(explicit, list) and explicit:
        return list(explicit)

    details = root.get("details") if isinstance(root.get("details"), dict) else {}
    direct = _string_or_empty(details.get("underlyingSymbol"))
    if direct and is_token_like(direct):
        return [direct]

    root_name = _string_or_empty(root.get("name"))
    if is_token_like(root_name):
        return [root_name]

    edges = snapshot.get("edges") or []
    if not edges:
        return []

    nodes_by_id = {node.get("id"): node for node in snapshot.get("nodes") or [] if isinstance(node, dict)}
    weights: dict[str, float] = {}

    for edge in edges:
        if not isinstance(edge, dict) or edge.get("from") != root.get("id"):
            continue
        to_node = nodes_by_id.get(edge.get("to"))
        if to_node is None:
            continue
        allocation = _number_or_none(edge.get("allocationUsd"))
        weight = abs(allocation) if allocation is not None else 0.0
        if not math.isfinite(weight) or weight <= 0:
            continue
        leaf_name = _string_or_empty(to_node.get("name"))
        if not leaf_name:
            continue

        slash_parts = leaf_name.split("/")
        if len(slash_parts) == 2 and all(part and is_token_like(part) for part in slash_parts):
            weights[slash_parts[0]] = weights.get(slash_parts[0], 0.0) + weight
            continue

        dash_parts = leaf_name.split("-")
        if len(dash_parts) == 2 and all(part and is_upper_token_like(part) for part in dash_parts):
            weights[dash_parts[0]] = weights.get(dash_parts[0], 0.0) + weight
            continue

        if is_token_like(leaf_name):
            weights[leaf_name] = weights.get(leaf_name, 0.0) + weight

    best_key = None
    best_weight = 0.0
    for key, weight in weights.items():
        if best_key is None or weight > best_weight:
            best_key, best_weight = key, weight
    return [best_key] if best_key is not None else []


def type_label(root: dict[str, Any]) -> str:
    details = root.get("details") if isinstance(root.get("details"), dict) else {}
    return _string_or_empty(details.get("subtype")) or _string_or_empty(details.get("kind"))


def search_entry_from_snapshot(snapshot: dict[str, Any]) -> SearchIndexEntry | None:
    nodes = snapshot.get("nodes") if isinstance(snapshot, dict) else None
    if not nodes or not isinstance(nodes[0], dict):
        return None
    # The orchestrator always serializes the root first.
    root = nodes[0]
    root_id = root.get("id")
    name = root.get("name")
    if not root_id or not name:
        return None

    id_parts = str(root_id).split(ID_SEPARATOR)
    protocol_from_id = id_parts[1] if len(id_parts) > 1 else "unknown"
    protocol = canonical_protocol_key(root.get("protocol") or protocol_from_id)
    chain = (id_parts[0] or DEFAULT_CHAIN).lower()
    details = root.get("details") if isinstance(root.get("details"), dict) else {}
    curator = details.get("curator")
    display_name = _string_or_empty(root.get("displayName"))
    logo_keys = infer_logo_keys(snapshot, root)

    return SearchIndexEntry(
        id=root_id,
        chain=chain,
        protocol=protocol,
        name=name,
        display_name=display_name or None,
        node_id=root_id,
        apy=_number_or_none(root.get("apy")),
        curator=curator if isinstance(curator, str) else None,
        tvl_usd=_number_or_none(root.get("tvlUsd")),
        logo_keys=logo_keys or None,
        type_label=type_label(root) or None,
    )


def collect_search_index_entries(output_dir: Path) -> list[SearchIndexEntry]:
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return []
    entries: list[SearchIndexEntry] = []
    for protocol_dir in sorted(path for path in output_dir.iterdir() if path.is_dir()):
        for file_path in sorted(protocol_dir.glob("*.json")):
            try:
                snapshot = read_json_file(file_path)
            except (OSError, ValueError) as exc:
                logger.warning("Search index: skipping unreadable snapshot %s: %s", file_path, exc)
                continue
            entry = search_entry_from_snapshot(snapshot)
            if entry is not None:
                entries.append(entry)
    return entries


def dedupe_entries(entries: Iterable[SearchIndexEntry]) -> list[SearchIndexEntry]:
    seen: set[str] = set()
    deduped: list[SearchIndexEntry] = []
    for entry in entries:
        key = f"{entry.protocol}|{entry.chain}|{entry.id}"
        if key in seen:
            continue
        seen.add(key)
        deduped.append(entry)
    return sorted(deduped, key=lambda entry: (entry.name.casefold(), entry.name))


def build_search_index(output_dir: Path) -> list[SearchIndexEntry]:
    return dedupe_entries(collect_search_index_entries(output_dir))


def write_search_index(output_dir: Path, out_path: Path | None = None) -> list[SearchIndexEntry]:
    entries = build_search_index(output_dir)
    target = out_path or Path(output_dir) / SEARCH_INDEX_FILENAME
    write_json_file(target, [entry.to_wire() for entry in entries])
    logger.info("Search index written to %s (%s entries)", target, len(entries))
    return entries


@dataclass(frozen=True)
class SearchFilters:
    protocol: str = ALL
    chain: str = ALL
    curator: str = ALL
    query: str = ""
    apy_min: str = ""
    apy_max: str = ""

    @property
    def is_active(self) -> bool:
        return bool(
            self.query
            or self.protocol != ALL
            or self.chain != ALL
            or self.curator != ALL
            or self.apy_min.strip()
            or self.apy_max.strip()
        )


def _parse_bound(raw: str) -> float | None:
    trimmed = raw.strip()
    if not trimmed:
        return None
    try:
        value = float(trimmed)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def filter_search_index(entries: Iterable[SearchIndexEntry], filters: SearchFilters) -> list[SearchIndexEntry]:
    results = list(entries)
    if filters.protocol != ALL:
        results = [entry for entry in results if entry.protocol.lower() == filters.protocol.lower()]
    if filters.chain != ALL:
        results = [entry for entry in results if entry.chain.lower() == filters.chain.lower()]
    if filters.query:
        needle = filters.query.lower()
        results = [
            entry
            for entry in results
            if needle in f"{entry.name} {entry.id} {entry.node_id} {entry.protocol} {entry.chain}".lower()
        ]
    if filters.apy_min.strip() or filters.apy_max.strip():
        low = _parse_bound(filters.apy_min)
        high = _parse_bound(filters.apy_max)
        kept = []
        for entry in results:
            if entry.apy is None:
                continue
            percent = apy_to_percent(entry.apy)
            if low is not None and percent < low:
                continue
            if high is not None and percent > high:
                continue
            kept.append(entry)
        results = kept
    if filters.curator != ALL:
        results = [entry for entry in results if entry.curator == filters.curator]
    return results


def search_facets(entries: Iterable[SearchIndexEntry], protocol: str = ALL, chain: str = ALL) -> dict[str, list[str]]:
    """Distinct protocols, chains and curators; curators are scoped to the protocol/chain selection."""
    entries = list(entries)
    curators: set[str] = set()
    for entry in entries:
        if protocol != ALL and entry.protocol.lower() != protocol.lower():
            continue
        if chain != ALL and entry.chain.lower() != chain.lower():
            continue
        if entry.curator and entry.curator.strip():
            curators.add(entry.curator.strip())
    return {
        "protocols": sorted({entry.protocol for entry in entries}),
        "chains": sorted({entry.chain for entry in entries}),
        "curators": sorted(curators),
    }
