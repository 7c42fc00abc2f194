from __future__ import annotations

from typing import Iterable

from exposure.api.schemas import Edge, GraphSnapshot, Node
from exposure.services.ids import normalize_node_id


class DraftGraphStore:
    """Mutable per-asset graph under construction.

    The root is fixed at creation and always serializes as ``nodes[0]``.
    Nodes are keyed by normalized id (last write wins); a later node sharing
    the root's id is ignored so the root keeps its place and payload.
    """

    def __init__(self, root: Node) -> None:
        self.root = root
        self._root_key = normalize_node_id(root.id)
        self._nodes: dict[str, Node] = {}
        self._edges: dict[tuple[str, str, str | None], Edge] = {}
        self._sources: list[str] = []

    def add_node(self, node: Node) -> None:
        key = normalize_node_id(node.id)
        if key == self._root_key:
            return
        self._nodes[key] = node

    def add_nodes(self, nodes: Iterable[Node]) -> None:
        for node in nodes:
            self.add_node(node)

    def add_edge(self, edge: Edge) -> None:
        key = (normalize_node_id(edge.from_), normalize_node_id(edge.to), edge.lending_position)
        self._edges[key] = edge

    def add_edges(self, edges: Iterable[Edge]) -> None:
        for edge in edges:
            self.add_edge(edge)

    def add_source(self, source: str) -> None:
        if source not in self._sources:
            self._sources.append(source)

    @property
    def sources(self) -> list[str]:
        return list(self._sources)

    def __len__(self) -> int:
        return 1 + len(self._nodes)

    def to_snapshot(self, sources: list[str] | None = None) -> GraphSnapshot:
        return GraphSnapshot(
            nodes=[self.root, *self._nodes.values()],
            edges=list(self._edges.values()),
            sources=list(self._sources if sources is None else sources),
        )
