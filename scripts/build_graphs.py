#!/usr/bin/env python3
"""
Build exposure graph snapshots for one or more protocol adapters.

Each asset is written to <output>/<protocol>/<root id>.json, followed by one
re-rooted copy per known multi-chain deployment. The search index is rebuilt
last so it always reflects every snapshot on disk.

Example:
  python scripts/build_graphs.py --adapters ethena,resolv --output-dir fixtures/output
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path

from tabulate import tabulate

from exposure.api.schemas import GraphSnapshot
from exposure.config import default_adapter_ids, load_env, output_dir
from exposure.services.adapters.registry import create_adapters
from exposure.services.deployments import clone_snapshot_with_root_id, get_deployment_node_ids
from exposure.services.ids import protocol_from_node_id
from exposure.services.orchestrator import build_snapshots
from exposure.services.search_index import write_search_index
from exposure.services.snapshot_io import write_snapshot

logger = logging.getLogger("build_graphs")


@dataclass(frozen=True)
class WrittenSnapshot:
    protocol: str
    root_id: str
    nodes: int
    edges: int
    alias_of: str | None
    path: Path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build exposure graph snapshots")
    parser.add_argument(
        "--adapters",
        default="",
        help="Comma-separated adapter ids (default: EXPOSURE_ADAPTERS or ethena,euler,resolv)",
    )
    parser.add_argument("--output-dir", default="", help="Snapshot output root (default: EXPOSURE_OUTPUT_DIR)")
    parser.add_argument("--skip-search-index", action="store_true", help="Do not rebuild search-index.json")
    parser.add_argument("--env-file", default="", help="Optional .env file to load before building")
    return parser.parse_args(argv)


def snapshot_protocol(snapshot: GraphSnapshot) -> str:
    if snapshot.sources:
        return snapshot.sources[0]
    root = snapshot.root
    return (root.protocol if root and root.protocol else protocol_from_node_id(root.id if root else "")) or "unknown"


def persist_with_deployments(out_dir: Path, snapshot: GraphSnapshot) -> list[WrittenSnapshot]:
    root = snapshot.root
    if root is None:
        return []
    protocol = snapshot_protocol(snapshot)
    written = [
        WrittenSnapshot(
            protocol=protocol,
            root_id=root.id,
            nodes=len(snapshot.nodes),
            edges=len(snapshot.edges),
            alias_of=None,
            path=write_snapshot(out_dir, protocol, snapshot),
        )
    ]
    for deployment_id in get_deployment_node_ids(protocol, root.id):
        alias = clone_snapshot_with_root_id(snapshot, deployment_id)
        written.append(
            WrittenSnapshot(
                protocol=protocol,
                root_id=deployment_id,
                nodes=len(alias.nodes),
                edges=len(alias.edges),
                alias_of=root.id,
                path=write_snapshot(out_dir, protocol, alias),
            )
        )
    return written


def print_summary(rows: list[WrittenSnapshot]) -> None:
    table = [
        [row.protocol, row.root_id, row.nodes, row.edges, row.alias_of or ""]
        for row in sorted(rows, key=lambda item: (item.protocol, item.alias_of or "", item.root_id))
    ]
    print(
        tabulate(
            table,
            headers=["Protocol", "Root", "Nodes", "Edges", "Alias of"],
            tablefmt="simple",
            colalign=("left", "left", "right", "right", "left"),
        )
    )


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    load_env(args.env_file or None)

    adapter_ids = [item.strip().lower() for item in args.adapters.split(",") if item.strip()] or default_adapter_ids()
    out_dir = Path(args.output_dir) if args.output_dir else output_dir()

    try:
        adapters = create_adapters(adapter_ids)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    snapshots = build_snapshots(adapters)
    written: list[WrittenSnapshot] = []
    for asset_key, snapshot in snapshots.items():
        try:
            written.extend(persist_with_deployments(out_dir, snapshot))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to persist %s: %s", asset_key, exc)

    if not args.skip_search_index:
        write_search_index(out_dir)

    print_summary(written)
    print(f"\n{len(written)} snapshots written to {out_dir}")
    return 0 if snapshots else 1


if __name__ == "__main__":
    raise SystemExit(main())
