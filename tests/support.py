from __future__ import annotations

from exposure.api.schemas import Edge, GraphSnapshot, Node, NodeDetails
from exposure.services.adapters.base import LeafSet


def node(node_id: str, name: str | None = None, kind: str | None = None, **fields) -> Node:
    details = fields.pop("details", None)
    if details is None and kind is not None:
        details = NodeDetails(kind=kind)
    chain = fields.pop("chain", node_id.split(":")[0])
    return Node(id=node_id, chain=chain, name=name or node_id, details=details, **fields)


def edge(source: str, target: str, usd: float, position: str | None = None) -> Edge:
    return Edge(from_=source, to=target, allocation_usd=usd, lending_position=position)


def snapshot(nodes: list[Node], edges: list[Edge], sources: list[str] | None = None) -> GraphSnapshot:
    return GraphSnapshot(nodes=nodes, edges=edges, sources=sources or [])


class FakeAdapter:
    """In-memory adapter: ``assets`` maps asset key -> (root, [(leaf, usd), ...])."""

    def __init__(self, adapter_id: str, assets: dict, fail_catalog: Exception | None = None) -> None:
        self.id = adapter_id
        self.assets = assets
        self.fail_catalog = fail_catalog
        self.catalog_calls = 0

    def fetch_catalog(self):
        self.catalog_calls += 1
        if self.fail_catalog is not None:
            raise self.fail_catalog
        return self.assets

    def get_asset_by_allocations(self, catalog):
        return {key: [value] for key, value in catalog.items()}

    def build_root_node(self, asset_key, allocations):
        root, _ = allocations[0]
        return root

    def build_edge(self, root, allocation_node, allocation):
        return Edge(from_=root.id, to=allocation_node.id, allocation_usd=allocation)

    def normalize_leaves(self, root, allocations):
        leaves = LeafSet()
        _, entries = allocations[0]
        for leaf, usd in entries:
            leaves.add(leaf, self.build_edge(root, leaf, usd))
        return leaves
