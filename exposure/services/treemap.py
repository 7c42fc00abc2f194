"""Treemap tiles for one focus node.

Children whose share would render smaller than roughly 53x53px are folded
into a single OTHERS tile, which the navigator can expand into its own view.
"""

from __future__ import annotations

from typing import Iterable

from exposure.api.schemas import Edge, GraphSnapshot, LendingPosition, Node, TreemapTile
from exposure.services.graph import DirectChild, find_node, get_direct_children
from exposure.services.ids import normalize_node_id

OTHERS_NODE_ID = "others"
OTHERS_NAME = "OTHERS"

MIN_TILE_AREA_PX = 2800
MIN_PERCENT_FLOOR = 0.001
MIN_PERCENT_CEILING = 0.02
MIN_PERCENT_WITHOUT_AREA = 0.005
OTHERS_MIN_COUNT = 3
MIN_MAJOR_COUNT = 6


def min_percent_for_area(width: float, height: float) -> float:
    area = width * height
    by_area = MIN_TILE_AREA_PX / area if area > 0 else MIN_PERCENT_WITHOUT_AREA
    return min(MIN_PERCENT_CEILING, max(MIN_PERCENT_FLOOR, by_area))


def _edges_by_from(edges: Iterable[Edge]) -> dict[str, list[Edge]]:
    grouped: dict[str, list[Edge]] = {}
    for edge in edges:
        grouped.setdefault(normalize_node_id(edge.from_), []).append(edge)
    return grouped


def _top_token_name(
    node_id: str,
    position: LendingPosition,
    edges_by_from: dict[str, list[Edge]],
    nodes_by_id: dict[str, Node],
) -> str | None:
    best: Edge | None = None
    for edge in edges_by_from.get(normalize_node_id(node_id), []):
        if edge.lending_position != position:
            continue
        if best is None or abs(edge.allocation_usd) > abs(best.allocation_usd):
            best = edge
    if best is None:
        return None
    target = nodes_by_id.get(normalize_node_id(best.to))
    return target.name if target else None


def tile_display_name(
    child: DirectChild,
    edges_by_from: dict[str, list[Edge]],
    nodes_by_id: dict[str, Node],
) -> str:
    node = child.node
    if node is None:
        return child.id
    if node.kind == "Lending":
        collateral = _top_token_name(node.id, "collateral", edges_by_from, nodes_by_id)
        borrow = _top_token_name(node.id, "borrow", edges_by_from, nodes_by_id)
        if collateral and borrow:
            return f"{collateral}/{borrow}"
        if collateral or borrow:
            return collateral or borrow
    return node.name


def is_terminal_node(
    node_id: str,
    edges_by_from: dict[str, list[Edge]],
    graph_root_ids: frozenset[str] | None,
) -> bool:
    """No outgoing edges here and no snapshot of its own elsewhere.

    Without the global root-id set nothing can be proven terminal.
    """
    if graph_root_ids is None:
        return False
    key = normalize_node_id(node_id)
    return not edges_by_from.get(key) and key not in graph_root_ids


def aggregate_others(tiles: list[TreemapTile], min_percent: float) -> list[TreemapTile]:
    ordered = sorted(tiles, key=lambda tile: tile.value, reverse=True)
    major = [tile for tile in ordered if tile.percent >= min_percent]
    minor = [tile for tile in ordered if tile.percent < min_percent]

    if not major and len(ordered) > MIN_MAJOR_COUNT:
        major = ordered[:MIN_MAJOR_COUNT]
        minor = ordered[MIN_MAJOR_COUNT:]

    if len(minor) < OTHERS_MIN_COUNT:
        return ordered

    minor_value = sum(tile.value for tile in minor)
    others = TreemapTile(
        name=OTHERS_NAME,
        value=minor_value,
        original_value=minor_value,
        percent=sum(tile.percent for tile in minor),
        node_id=OTHERS_NODE_ID,
        is_others=True,
        child_ids=[tile.node_id for tile in minor],
        child_count=len(minor),
    )
    return [*major, others]


def build_treemap_tiles(
    snapshot: GraphSnapshot,
    focus_id: str,
    container_width: float,
    container_height: float,
    graph_root_ids: frozenset[str] | None = None,
    others_children_ids: list[str] | None = None,
    min_percent: float | None = None,
) -> list[TreemapTile]:
    """Tiles for ``focus_id``'s direct children, largest first.

    ``others_children_ids`` renders the expanded OTHERS view: only those
    children, never re-aggregated. ``min_percent`` overrides the threshold
    derived from the container area.
    """
    focus = find_node(snapshot, focus_id)
    if focus is None:
        return []

    children = get_direct_children(focus, snapshot.nodes, snapshot.edges)
    if others_children_ids is not None:
        scope = {normalize_node_id(node_id) for node_id in others_children_ids}
        children = [child for child in children if normalize_node_id(child.id) in scope]

    nodes_by_id = {normalize_node_id(node.id): node for node in snapshot.nodes}
    edges_by_from = _edges_by_from(snapshot.edges)

    tiles = [
        TreemapTile(
            name=tile_display_name(child, edges_by_from, nodes_by_id),
            value=child.value,
            original_value=child.edge.allocation_usd,
            percent=child.percent,
            node_id=child.id,
            node=child.node,
            lending_position=child.edge.lending_position,
            is_terminal=is_terminal_node(child.id, edges_by_from, graph_root_ids),
        )
        for child in children
    ]

    if others_children_ids is not None:
        return sorted(tiles, key=lambda tile: tile.value, reverse=True)

    threshold = min_percent if min_percent is not None else min_percent_for_area(container_width, container_height)
    return aggregate_others(tiles, threshold)
