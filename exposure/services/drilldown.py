from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from exposure.api.schemas import LendingPosition, Node
from exposure.services.ids import normalize_node_id
from exposure.services.navigation import AssetNavigator
from exposure.services.notifications import TerminalToast, terminal_message

logger = logging.getLogger(__name__)


class SnapshotProbe(Protocol):
    def snapshot_exists(
        self,
        node_id: str,
        protocol: str | None = None,
        chain: str | None = None,
        origin: str | None = None,
    ) -> bool: ...


@dataclass(frozen=True)
class RouteTransition:
    asset_id: str
    protocol: str | None
    chain: str | None
    origin: str

    def query_params(self) -> dict[str, str]:
        params = {"origin": self.origin}
        if self.protocol:
            params["protocol"] = self.protocol
        if self.chain:
            params["chain"] = self.chain
        return params


@dataclass(frozen=True)
class LocalDrilldown:
    node_id: str


@dataclass(frozen=True)
class TerminalNotice:
    node_id: str
    message: str


DrilldownOutcome = RouteTransition | LocalDrilldown | TerminalNotice


def is_lending_node(node: Node) -> bool:
    return node.kind.lower() == "lending"


class DrilldownRouter:
    """Decides what a tile click does: open another snapshot, drill locally, or report a dead end."""

    def __init__(self, navigator: AssetNavigator, probe: SnapshotProbe, toast: TerminalToast | None = None) -> None:
        self.navigator = navigator
        self.probe = probe
        self.toast = toast or TerminalToast()

    def _probe(self, node_id: str, protocol: str | None, chain: str | None, origin: str) -> bool:
        try:
            return self.probe.snapshot_exists(node_id, protocol=protocol, chain=chain, origin=origin)
        except Exception as exc:
            logger.debug("Snapshot probe for %s failed: %s", node_id, exc)
            return False

    def select(self, node: Node, lending_position: LendingPosition | None = None) -> DrilldownOutcome | None:
        """Route a selection; returns None when the navigator moved on while probing."""
        navigator = self.navigator
        if not node.id:
            return None
        navigator.select_node(node)

        node_id = normalize_node_id(node.id)
        asset_id = normalize_node_id(navigator.asset_id)
        should_probe = bool(node_id) and node_id != asset_id and lending_position is None and not is_lending_node(node)

        if should_probe:
            protocol = (node.protocol or navigator.protocol or "").strip() or None
            chain = (node.chain or navigator.chain or "").strip() or None
            origin = navigator.origin or navigator.asset_id
            generation = navigator.generation
            exists = self._probe(node_id, protocol, chain, origin)
            if navigator.closed or navigator.generation != generation:
                return None
            if exists:
                navigator.set_asset(node_id, chain=chain, protocol=protocol, origin=origin)
                return RouteTransition(asset_id=node_id, protocol=protocol, chain=chain, origin=origin)

        if navigator.has_local_children(node.id):
            navigator.apply_local_drilldown(node)
            return LocalDrilldown(node_id=node.id)

        message = terminal_message(node.name)
        self.toast.show(message)
        return TerminalNotice(node_id=node.id, message=message)
