"""Drilldown state for one asset view.

A navigator owns the loaded snapshot, the current focus, the back stack and
the expanded OTHERS view. Loads are tagged with a generation number; a
result arriving for an older generation, or after ``close()``, is dropped.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from exposure.api.schemas import GraphSnapshot, Node, TreemapTile
from exposure.services.formatters import (
    NodeTypeCategory,
    classify_node_type,
    format_apy,
    format_chain_label,
    format_usd_compact,
    node_type_label,
)
from exposure.services.graph import (
    NodeContext,
    calculate_node_context,
    compute_tvl,
    find_node,
    outgoing_edges,
    resolve_root_node,
)
from exposure.services.ids import normalize_node_id, same_node_id
from exposure.services.logos import (
    chain_logo_path,
    fallback_monogram,
    has_chain_logo,
    node_logos,
)
from exposure.services.shared.http import FetchError
from exposure.services.treemap import build_treemap_tiles

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[str, "str | None", "str | None"], "GraphSnapshot | None"]


class NavigationPhase(str, enum.Enum):
    LOADING = "loading"
    LOADED = "loaded"
    FOCUSED = "focused"
    OTHERS_EXPANDED = "others_expanded"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Breadcrumb:
    label: str
    href: str | None = None
    current: bool = False


@dataclass(frozen=True)
class NodeDetailView:
    """Display-ready summary of the selected node."""

    name: str
    protocol_label: str
    chain_label: str
    chain_logo: str | None
    logos: list[str]
    monogram: str
    type_label: str
    type_category: NodeTypeCategory
    apy_label: str
    incoming_label: str
    share_of_allocation_map: float
    outgoing_count: int


def protocol_label(protocol: str | None) -> str:
    if not protocol:
        return "UNKNOWN"
    lowered = protocol.lower()
    if "morpho-v1" in lowered:
        return "MORPHO V1"
    if "morpho-v2" in lowered:
        return "MORPHO V2"
    return protocol.upper()


def describe_node(node: Node, context: NodeContext) -> NodeDetailView:
    return NodeDetailView(
        name=node.display_name or node.name,
        protocol_label=protocol_label(node.protocol),
        chain_label=format_chain_label(node.chain),
        chain_logo=chain_logo_path(node.chain) if has_chain_logo(node.chain) else None,
        logos=node_logos(node),
        monogram=fallback_monogram(node.name),
        type_label=node_type_label(node.details),
        type_category=classify_node_type(node.details),
        apy_label=format_apy(node.apy),
        incoming_label=format_usd_compact(context.total_incoming_usd),
        share_of_allocation_map=context.share_of_allocation_map,
        outgoing_count=context.outgoing_count,
    )


class AssetNavigator:
    def __init__(
        self,
        asset_id: str,
        chain: str | None = None,
        protocol: str | None = None,
        focus: str | None = None,
        origin: str | None = None,
    ) -> None:
        self._generation = 0
        self._closed = False
        self.set_asset(asset_id, chain=chain, protocol=protocol, focus=focus, origin=origin)

    def set_asset(
        self,
        asset_id: str,
        chain: str | None = None,
        protocol: str | None = None,
        focus: str | None = None,
        origin: str | None = None,
    ) -> None:
        """Point the navigator at another asset; any in-flight load becomes stale."""
        self.asset_id = asset_id
        self.chain = chain
        self.protocol = protocol
        self.requested_focus = focus
        self.origin = origin
        self.snapshot: GraphSnapshot | None = None
        self.root: Node | None = None
        self.selected_node: Node | None = None
        self.focus_id: str | None = None
        self.tvl: float | None = None
        self.page_title = asset_id
        self._focus_stack: list[str] = []
        self._others_children_ids: list[str] = []
        self._is_others_view = False
        self._loading = True
        self._generation += 1

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        self._generation += 1

    @property
    def phase(self) -> NavigationPhase:
        if self._loading:
            return NavigationPhase.LOADING
        if self.snapshot is None or self.root is None:
            return NavigationPhase.NOT_FOUND
        if self._is_others_view:
            return NavigationPhase.OTHERS_EXPANDED
        if self.is_at_asset_root:
            return NavigationPhase.LOADED
        return NavigationPhase.FOCUSED

    @property
    def focus_stack(self) -> tuple[str, ...]:
        return tuple(self._focus_stack)

    @property
    def is_others_view(self) -> bool:
        return self._is_others_view

    @property
    def others_children_ids(self) -> tuple[str, ...]:
        return tuple(self._others_children_ids)

    @property
    def is_at_asset_root(self) -> bool:
        return self.root is not None and self.focus_id == self.root.id

    @property
    def selected_context(self) -> NodeContext | None:
        """Flows of the selected node, with its share measured against the current focus."""
        if self.snapshot is None or self.selected_node is None:
            return None
        return calculate_node_context(self.selected_node, self.snapshot.edges, self.focus_id)

    @property
    def selected_detail(self) -> NodeDetailView | None:
        context = self.selected_context
        if context is None:
            return None
        return describe_node(self.selected_node, context)

    def begin_load(self) -> int:
        self._generation += 1
        self._loading = True
        return self._generation

    def complete_load(self, generation: int, snapshot: GraphSnapshot | None) -> bool:
        """Apply a load result; returns False when the result was discarded as stale."""
        if self._closed or generation != self._generation:
            logger.debug("Discarding stale snapshot load for %s (generation %s)", self.asset_id, generation)
            return False

        self._loading = False
        self.snapshot = snapshot
        if snapshot is None:
            self.root = None
            return True

        root = resolve_root_node(snapshot, self.asset_id, self.chain)
        self.root = root
        if root is None:
            return True

        focus_node = find_node(snapshot, self.requested_focus)
        initial = focus_node or root
        self.selected_node = initial
        self._set_focus(initial.id)
        self._focus_stack = []
        self.page_title = f"{format_chain_label(root.chain or self.chain)} {initial.name}"
        self.tvl = compute_tvl(root, snapshot.edges)
        return True

    def load(self, loader: SnapshotLoader) -> NavigationPhase:
        generation = self.begin_load()
        try:
            snapshot = loader(normalize_node_id(self.asset_id), self.chain, self.protocol)
        except FetchError as exc:
            logger.warning("Snapshot load for %s failed: %s", self.asset_id, exc)
            snapshot = None
        self.complete_load(generation, snapshot)
        return self.phase

    def _set_focus(self, node_id: str) -> None:
        self.focus_id = node_id
        self._is_others_view = False
        self._others_children_ids = []

    def select_node(self, node: Node) -> None:
        self.selected_node = node

    def has_local_children(self, node_id: str) -> bool:
        if self.snapshot is None:
            return False
        return bool(outgoing_edges(node_id, self.snapshot.edges))

    def apply_local_drilldown(self, node: Node) -> None:
        current = self.focus_id or (self.root.id if self.root else None)
        if current is None or current == node.id:
            self._set_focus(node.id)
            return
        self._focus_stack.append(current)
        self._set_focus(node.id)

    def handle_back_one_step(self) -> None:
        if self.snapshot is None:
            return
        if self._is_others_view:
            self.collapse_others()
            return
        if not self._focus_stack:
            if self.root is not None and self.focus_id != self.root.id:
                self._set_focus(self.root.id)
                self.selected_node = self.root
            return
        previous_id = self._focus_stack.pop()
        self._set_focus(previous_id)
        previous = find_node(self.snapshot, previous_id)
        if previous is not None:
            self.selected_node = previous

    def expand_others(self, child_ids: list[str]) -> None:
        self._others_children_ids = list(child_ids)
        self._is_others_view = True

    def collapse_others(self) -> None:
        self._is_others_view = False
        self._others_children_ids = []

    def url_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.chain:
            params["chain"] = self.chain
        if self.protocol:
            params["protocol"] = self.protocol
        if self.origin:
            params["origin"] = self.origin
        if self.focus_id and not (self.root and same_node_id(self.focus_id, self.root.id)):
            params["focus"] = self.focus_id
        return params

    def breadcrumbs(self) -> list[Breadcrumb]:
        items: list[Breadcrumb] = []
        if self.origin and self.origin != self.asset_id:
            items.append(Breadcrumb(label=self.origin.upper(), href=f"/asset/{self.origin}"))
        items.append(Breadcrumb(label=self.page_title.upper(), current=True))
        return items

    def tiles(
        self,
        container_width: float,
        container_height: float,
        graph_root_ids: frozenset[str] | None = None,
    ) -> list[TreemapTile]:
        if self.snapshot is None or self.focus_id is None:
            return []
        return build_treemap_tiles(
            self.snapshot,
            self.focus_id,
            container_width,
            container_height,
            graph_root_ids=graph_root_ids,
            others_children_ids=self._others_children_ids if self._is_others_view else None,
        )
