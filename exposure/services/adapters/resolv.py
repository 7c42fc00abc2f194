"""Resolv adapter.

The Resolv treasury (DeBank bundle 220554) backs USR, wstUSR and RLP with
the same set of on-chain protocol positions, so all three roots expand into
one shared leaf set. Positions are read per treasury address from the DeBank
Pro API and aggregated by ``<chain>:<protocol>:<pool>``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Sequence

from exposure.api.schemas import Edge, LendingPosition, Node, NodeDetails
from exposure.services.adapters.base import LeafSet
from exposure.services.ids import build_node_id, to_slug
from exposure.services.shared.http import FetchError, fetch_json, settle_all
from exposure.services.shared.numbers import round_to_two_decimals, to_float

logger = logging.getLogger(__name__)

RESOLV_PROTOCOL = "resolv"
RESOLV_BUNDLE_ID = "220554"
DEBANK_API_BASE_URL = os.getenv("DEBANK_API_BASE_URL", "https://pro-openapi.debank.com")

ASSET_USR = "USR"
ASSET_WSTUSR = "wstUSR"
ASSET_RLP = "RLP"

USR_ROOT_ID = "eth:resolv:0x66a1e37c9b0eaddca17d3662d6c05f4decf3e110"
WSTUSR_ROOT_ID = "eth:resolv:0x1202f5c7b4b9e47a1a484e8b270be34dbbc75055"
RLP_ROOT_ID = "eth:resolv:0x4956b52ae2ff65d74ca2d61207523288e4528f96"

_ROOTS: dict[str, tuple[str, str]] = {
    ASSET_USR: (USR_ROOT_ID, "Deposit"),
    ASSET_WSTUSR: (WSTUSR_ROOT_ID, "Staked"),
    ASSET_RLP: (RLP_ROOT_ID, "Yield"),
}


@dataclass(frozen=True)
class TokenLeg:
    token_id: str
    chain: str
    symbol: str
    usd: float
    position: LendingPosition


@dataclass
class TreasuryPosition:
    node_id: str
    chain: str
    protocol: str
    name: str
    kind: str
    net_usd: float = 0.0
    health_rate: float | None = None
    legs: list[TokenLeg] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvCatalog:
    positions: tuple[TreasuryPosition, ...]
    addresses: tuple[str, ...]


@dataclass(frozen=True)
class ResolvAllocation:
    catalog: ResolvCatalog


def treasury_addresses_from_env() -> list[str]:
    raw = os.getenv("RESOLV_TREASURY_ADDRESSES", "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def position_node_id(chain: str, protocol_id: str, pool_id: str) -> str:
    return build_node_id(chain, to_slug(protocol_id), pool_id)


def token_node_id(chain: str, token_id: str) -> str:
    return build_node_id(chain, "token", token_id)


def _is_lending(item: dict[str, Any]) -> bool:
    detail_types = item.get("detail_types") or []
    return "lending" in detail_types


def _token_legs(chain: str, item: dict[str, Any]) -> list[TokenLeg]:
    detail = item.get("detail") or {}
    legs: list[TokenLeg] = []
    for key, position, sign in (("supply_token_list", "collateral", 1.0), ("borrow_token_list", "borrow", -1.0)):
        for token in detail.get(key) or []:
            if not isinstance(token, dict) or not token.get("id"):
                continue
            price = to_float(token.get("price"))
            amount = to_float(token.get("amount"))
            if price is None or amount is None:
                continue
            legs.append(
                TokenLeg(
                    token_id=str(token["id"]).lower(),
                    chain=str(token.get("chain") or chain).lower(),
                    symbol=str(token.get("symbol") or token["id"]),
                    usd=sign * abs(amount * price),
                    position=position,
                )
            )
    return legs


def parse_protocol_list(payload: Any, positions: dict[str, TreasuryPosition]) -> None:
    """Fold one address' DeBank protocol list into ``positions`` (keyed by node id)."""
    if not isinstance(payload, list):
        return
    for protocol in payload:
        if not isinstance(protocol, dict):
            continue
        chain = str(protocol.get("chain") or "").lower()
        protocol_id = str(protocol.get("id") or "")
        if not chain or not protocol_id:
            continue
        protocol_name = str(protocol.get("name") or protocol_id)
        for item in protocol.get("portfolio_item_list") or []:
            pool_id = str(((item.get("pool") or {}).get("id")) or "").lower()
            if not pool_id:
                logger.debug("Resolv: %s position without pool id skipped", protocol_id)
                continue
            try:
                node_id = position_node_id(chain, protocol_id, pool_id)
            except ValueError:
                logger.debug("Resolv: malformed position id %s/%s/%s", chain, protocol_id, pool_id)
                continue
            net_usd = to_float((item.get("stats") or {}).get("net_usd_value")) or 0.0
            lending = _is_lending(item)
            existing = positions.get(node_id)
            if existing is None:
                label = str(item.get("name") or "").strip()
                existing = TreasuryPosition(
                    node_id=node_id,
                    chain=chain,
                    protocol=to_slug(protocol_id),
                    name=f"{protocol_name} {label}".strip() if label and label != protocol_name else protocol_name,
                    kind="Lending" if lending else (str(item.get("name") or "Investment").strip() or "Investment"),
                )
                positions[node_id] = existing
            existing.net_usd += net_usd
            if lending:
                health = to_float((item.get("detail") or {}).get("health_rate"))
                if health is not None:
                    existing.health_rate = health
                existing.legs.extend(_token_legs(chain, item))


class ResolvAdapter:
    id = RESOLV_PROTOCOL

    def __init__(
        self,
        addresses: Sequence[str] | None = None,
        access_key: str | None = None,
        base_url: str = DEBANK_API_BASE_URL,
    ) -> None:
        self.addresses = [item.lower() for item in addresses] if addresses is not None else treasury_addresses_from_env()
        self.access_key = access_key if access_key is not None else os.getenv("DEBANK_ACCESS_KEY", "")
        self.base_url = base_url.rstrip("/")
        self._catalog: ResolvCatalog | None = None

    def _fetch_address(self, address: str) -> Any:
        return fetch_json(
            f"{self.base_url}/v1/user/all_complex_protocol_list?id={address}",
            headers={"AccessKey": self.access_key},
        )

    def fetch_catalog(self) -> ResolvCatalog:
        if self._catalog is not None:
            return self._catalog
        if not self.access_key:
            raise FetchError("Resolv: DEBANK_ACCESS_KEY is not set")
        if not self.addresses:
            raise FetchError(f"Resolv: no treasury addresses configured for bundle {RESOLV_BUNDLE_ID}")

        results, failures = settle_all(
            {address: (lambda address=address: self._fetch_address(address)) for address in self.addresses}
        )
        if not results:
            first_error = next(iter(failures.values()), None)
            raise FetchError(f"Resolv: every treasury address failed (first error: {first_error})")

        positions: dict[str, TreasuryPosition] = {}
        # Stable merge order regardless of completion order.
        for address in self.addresses:
            if address in results:
                parse_protocol_list(results[address], positions)
        self._catalog = ResolvCatalog(positions=tuple(positions.values()), addresses=tuple(sorted(results)))
        logger.info(
            "Resolv treasury: %s positions from %s/%s addresses",
            len(positions),
            len(results),
            len(self.addresses),
        )
        return self._catalog

    def get_asset_by_allocations(self, catalog: ResolvCatalog) -> dict[str, list[ResolvAllocation]]:
        shared = [ResolvAllocation(catalog=catalog)]
        return {asset: shared for asset in _ROOTS}

    def build_root_node(self, asset_key: str, allocations: Sequence[ResolvAllocation]) -> Node | None:
        if not allocations or asset_key not in _ROOTS:
            return None
        root_id, kind = _ROOTS[asset_key]
        # TVL stays unknown; consumers fall back to the sum of outgoing edges.
        return Node(
            id=root_id,
            chain="eth",
            name=asset_key,
            protocol=RESOLV_PROTOCOL,
            details=NodeDetails(kind=kind),
        )

    def build_edge(self, root: Node, allocation_node: Node, allocation: TreasuryPosition | TokenLeg) -> Edge:
        if isinstance(allocation, TokenLeg):
            return Edge(
                from_=root.id,
                to=allocation_node.id,
                allocation_usd=round_to_two_decimals(allocation.usd),
                lending_position=allocation.position,
            )
        return Edge(from_=root.id, to=allocation_node.id, allocation_usd=round_to_two_decimals(allocation.net_usd))

    def normalize_leaves(self, root: Node, allocations: Sequence[ResolvAllocation]) -> LeafSet:
        leaves = LeafSet()
        if not allocations:
            return leaves

        for position in allocations[0].catalog.positions:
            if position.net_usd <= 0:
                continue
            node = Node(
                id=position.node_id,
                chain=position.chain,
                name=position.name,
                protocol=position.protocol,
                details=NodeDetails(kind=position.kind, health_rate=position.health_rate),
                tvl_usd=round_to_two_decimals(position.net_usd),
            )
            leaves.add(node, self.build_edge(root, node, position))

            merged: dict[tuple[str, str], TokenLeg] = {}
            for leg in position.legs:
                key = (leg.token_id, leg.position)
                previous = merged.get(key)
                if previous is not None:
                    leg = TokenLeg(leg.token_id, leg.chain, leg.symbol, previous.usd + leg.usd, leg.position)
                merged[key] = leg
            for leg in merged.values():
                token = Node(
                    id=token_node_id(leg.chain, leg.token_id),
                    chain=leg.chain,
                    name=leg.symbol,
                    details=NodeDetails(kind="Token"),
                )
                leaves.add(token, self.build_edge(node, token, leg))
        return leaves
