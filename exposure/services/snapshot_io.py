from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from exposure.api.schemas import GraphSnapshot
from exposure.services.ids import normalize_node_id

SEARCH_INDEX_FILENAME = "search-index.json"


def snapshot_path(output_dir: Path, protocol: str, root_node_id: str) -> Path:
    return Path(output_dir) / protocol.strip().lower() / f"{normalize_node_id(root_node_id)}.json"


def write_json_file(path: Path, payload: Any) -> Path:
    """Write JSON atomically: readers see either the old file or the new one."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, indent=2))
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def read_json_file(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def write_snapshot(output_dir: Path, protocol: str, snapshot: GraphSnapshot) -> Path:
    root = snapshot.root
    if root is None:
        raise ValueError("Cannot persist a snapshot without a root node")
    return write_json_file(snapshot_path(output_dir, protocol, root.id), snapshot.to_wire())


def read_snapshot(path: Path) -> GraphSnapshot:
    return GraphSnapshot.model_validate(read_json_file(path))
