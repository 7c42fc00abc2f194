from __future__ import annotations

import logging
from typing import Any, Sequence

from exposure.api.schemas import GraphSnapshot
from exposure.services.adapters.base import Adapter
from exposure.services.graph_store import DraftGraphStore

logger = logging.getLogger(__name__)


def build_draft_graphs_by_asset(adapters: Sequence[Adapter[Any, Any]]) -> dict[str, DraftGraphStore]:
    """Run every adapter once and merge their one-hop expansions per asset.

    Adapters run sequentially and in order; a later adapter contributing to
    an asset already seen extends the existing store under its first root.
    """
    stores: dict[str, DraftGraphStore] = {}

    for adapter in adapters:
        try:
            catalog = adapter.fetch_catalog()
            allocations_by_asset = adapter.get_asset_by_allocations(catalog)
        except Exception as exc:
            logger.warning("Adapter %s skipped: catalog unavailable: %s", adapter.id, exc)
            continue

        built = 0
        for asset_key, allocations in allocations_by_asset.items():
            try:
                root = adapter.build_root_node(asset_key, allocations)
                if root is None:
                    logger.debug("Adapter %s: no root for asset %s", adapter.id, asset_key)
                    continue
                store = stores.get(asset_key)
                leaves = adapter.normalize_leaves(store.root if store else root, allocations)
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Adapter %s: asset %s dropped: %s", adapter.id, asset_key, exc)
                continue

            if store is None:
                store = DraftGraphStore(root)
                stores[asset_key] = store
            store.add_nodes(leaves.nodes)
            store.add_edges(leaves.edges)
            store.add_source(adapter.id)
            built += 1

        logger.info("Adapter %s expanded %s/%s assets", adapter.id, built, len(allocations_by_asset))

    return stores


def build_snapshots(adapters: Sequence[Adapter[Any, Any]]) -> dict[str, GraphSnapshot]:
    return {asset_key: store.to_snapshot() for asset_key, store in build_draft_graphs_by_asset(adapters).items()}
