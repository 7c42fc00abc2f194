from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from exposure.api.schemas import Edge, GraphSnapshot, Node
from exposure.services.ids import normalize_node_id


@dataclass(frozen=True)
class DirectChild:
    id: str
    node: Node | None
    edge: Edge
    value: float
    percent: float


def outgoing_edges(node_id: str, edges: Sequence[Edge]) -> list[Edge]:
    key = normalize_node_id(node_id)
    return [edge for edge in edges if normalize_node_id(edge.from_) == key]


def find_node(snapshot: GraphSnapshot, node_id: str | None) -> Node | None:
    if not node_id:
        return None
    key = normalize_node_id(node_id)
    for node in snapshot.nodes:
        if normalize_node_id(node.id) == key:
            return node
    return None


def get_direct_children(focus: Node, nodes: Sequence[Node], edges: Sequence[Edge]) -> list[DirectChild]:
    """Destinations of ``focus``'s outgoing edges with their share of its total outgoing weight."""
    nodes_by_id = {normalize_node_id(node.id): node for node in nodes}
    outgoing = outgoing_edges(focus.id, edges)
    total = sum(abs(edge.allocation_usd) for edge in outgoing)
    children = []
    for edge in outgoing:
        value = abs(edge.allocation_usd)
        children.append(
            DirectChild(
                id=edge.to,
                node=nodes_by_id.get(normalize_node_id(edge.to)),
                edge=edge,
                value=value,
                percent=value / total if total > 0 else 0.0,
            )
        )
    return children


def resolve_root_node(snapshot: GraphSnapshot, node_id: str, chain: str | None = None) -> Node | None:
    """Node matching ``node_id``; the chain hint breaks ties between same-id nodes.

    A bare key (no chain prefix) also matches ids ending in ``:<key>``.
    """
    target = normalize_node_id(node_id)
    candidates = [node for node in snapshot.nodes if normalize_node_id(node.id) == target]
    if not candidates:
        suffix = f":{target}"
        candidates = [node for node in snapshot.nodes if normalize_node_id(node.id).endswith(suffix)]
    if not candidates:
        return None
    if len(candidates) > 1 and chain:
        chain_key = chain.strip().lower()
        for node in candidates:
            if (node.chain or "").strip().lower() == chain_key:
                return node
    return candidates[0]


def compute_tvl(root: Node, edges: Sequence[Edge]) -> float:
    if root.tvl_usd:
        return root.tvl_usd
    return sum(abs(edge.allocation_usd) for edge in outgoing_edges(root.id, edges))


@dataclass(frozen=True)
class NodeContext:
    total_incoming_usd: float
    total_outgoing_usd: float
    outgoing_count: int
    share_of_allocation_map: float


def calculate_node_context(node: Node, edges: Sequence[Edge], root_id: str | None = None) -> NodeContext:
    """Flows around ``node`` and its share of everything leaving ``root_id``.

    The share is incoming USD over the root's total absolute outgoing USD, or 0
    when the root has no outgoing weight.
    """
    key = normalize_node_id(node.id)
    incoming = sum(edge.allocation_usd for edge in edges if normalize_node_id(edge.to) == key)
    outgoing = outgoing_edges(node.id, edges)
    root_total = sum(abs(edge.allocation_usd) for edge in outgoing_edges(root_id, edges)) if root_id else 0.0
    return NodeContext(
        total_incoming_usd=incoming,
        total_outgoing_usd=sum(abs(edge.allocation_usd) for edge in outgoing),
        outgoing_count=len(outgoing),
        share_of_allocation_map=incoming / root_total if root_total else 0.0,
    )
