from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, TypeVar

from exposure.api.schemas import Edge, Node

CatalogT = TypeVar("CatalogT")
AllocationT = TypeVar("AllocationT")


@dataclass
class LeafSet:
    """One-hop expansion of an asset: leaf nodes plus the edges reaching them."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def add(self, node: Node, edge: Edge) -> None:
        self.nodes.append(node)
        self.edges.append(edge)


class Adapter(Protocol[CatalogT, AllocationT]):
    """Capability set every protocol data source implements.

    ``fetch_catalog`` is the only method allowed to do I/O. It may raise
    ``FetchError`` when nothing could be fetched; every other method is pure
    and signals "skip" by returning ``None`` or dropping leaves.
    """

    id: str

    def fetch_catalog(self) -> CatalogT: ...

    def get_asset_by_allocations(self, catalog: CatalogT) -> dict[str, list[AllocationT]]: ...

    def build_root_node(self, asset_key: str, allocations: Sequence[AllocationT]) -> Node | None: ...

    def build_edge(self, root: Node, allocation_node: Node, allocation: Any) -> Edge: ...

    def normalize_leaves(self, root: Node, allocations: Sequence[AllocationT]) -> LeafSet: ...
