from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Sequence

from exposure.api.schemas import Edge, Node, NodeDetails
from exposure.services.adapters.base import LeafSet
from exposure.services.ids import build_node_id, to_slug
from exposure.services.shared.http import FetchError, fetch_json
from exposure.services.shared.numbers import round_to_two_decimals, to_float, usd_value

logger = logging.getLogger(__name__)

ETHENA_PROTOCOL = "ethena"
ETHENA_API_BASE_URL = os.getenv("ETHENA_API_BASE_URL", "https://app.ethena.fi/api")

ASSET_USDE = "USDe"
ASSET_SUSDE = "sUSDe"

USDE_ROOT_ID = "eth:ethena:0x4c9edd5852cd905f086c759e8383e09bff1e68b3"
SUSDE_ROOT_ID = "eth:ethena:0x9d39a5de30e57443bff2a8307a4256c8797a3497"

_TOKEN_DECIMALS = 18


@dataclass(frozen=True)
class EthenaCatalog:
    chain_metrics: dict[str, Any]
    collateral: list[dict[str, Any]]
    susde_apy: float | None = None


@dataclass(frozen=True)
class EthenaAllocation:
    """Both Ethena assets share a single overview of the backing portfolio."""

    catalog: EthenaCatalog


@dataclass(frozen=True)
class BackingPosition:
    exchange: str
    asset: str
    usd: float


def backing_node_id(exchange: str, asset: str) -> str:
    return build_node_id("global", ETHENA_PROTOCOL, f"{to_slug(exchange)}:{to_slug(asset)}")


def _latest_data(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        latest = payload.get("latest")
        if isinstance(latest, dict) and isinstance(latest.get("data"), dict):
            return latest["data"]
        if isinstance(payload.get("data"), dict):
            return payload["data"]
    return {}


def _supply_tvl(supply_wei: Any, price: Any) -> float | None:
    price_usd = to_float(price)
    if supply_wei in (None, "") or price_usd is None:
        return None
    try:
        return usd_value(supply_wei, _TOKEN_DECIMALS, price_usd)
    except (TypeError, ValueError):
        return None


class EthenaAdapter:
    id = ETHENA_PROTOCOL

    def __init__(self, base_url: str = ETHENA_API_BASE_URL) -> None:
        self.base_url = base_url.rstrip("/")
        self._catalog: EthenaCatalog | None = None

    def fetch_catalog(self) -> EthenaCatalog:
        if self._catalog is not None:
            return self._catalog
        chain_metrics = _latest_data(fetch_json(f"{self.base_url}/solvency/chain-metrics?latest=true"))
        collateral_data = _latest_data(fetch_json(f"{self.base_url}/positions/current/collateral?latest=true"))
        if not chain_metrics:
            raise FetchError("Ethena: chain metrics response has no latest data")
        try:
            yields = fetch_json(f"{self.base_url}/yields/protocol-and-staking-yield")
            staking = yields.get("stakingYield") if isinstance(yields, dict) else None
            susde_apy = to_float(staking.get("value")) if isinstance(staking, dict) else None
        except FetchError as exc:
            logger.warning("Ethena staking yield unavailable: %s", exc)
            susde_apy = None

        collateral = collateral_data.get("collateral", [])
        self._catalog = EthenaCatalog(
            chain_metrics=chain_metrics,
            collateral=collateral if isinstance(collateral, list) else [],
            susde_apy=susde_apy,
        )
        return self._catalog

    def get_asset_by_allocations(self, catalog: EthenaCatalog) -> dict[str, list[EthenaAllocation]]:
        shared = [EthenaAllocation(catalog=catalog)]
        return {ASSET_USDE: shared, ASSET_SUSDE: shared}

    def build_root_node(self, asset_key: str, allocations: Sequence[EthenaAllocation]) -> Node | None:
        if not allocations:
            return None
        metrics = allocations[0].catalog.chain_metrics

        if asset_key == ASSET_USDE:
            return Node(
                id=USDE_ROOT_ID,
                chain="eth",
                name=ASSET_USDE,
                protocol=ETHENA_PROTOCOL,
                details=NodeDetails(kind="Deposit"),
                tvl_usd=_supply_tvl(metrics.get("totalUsdeSupply"), metrics.get("usdePrice")),
            )

        if asset_key == ASSET_SUSDE:
            return Node(
                id=SUSDE_ROOT_ID,
                chain="eth",
                name=ASSET_SUSDE,
                protocol=ETHENA_PROTOCOL,
                details=NodeDetails(kind="Staked"),
                apy=allocations[0].catalog.susde_apy,
                tvl_usd=_supply_tvl(metrics.get("totalSusdeSupply"), metrics.get("susdePrice")),
            )

        return None

    def build_edge(self, root: Node, allocation_node: Node, allocation: BackingPosition) -> Edge:
        return Edge(from_=root.id, to=allocation_node.id, allocation_usd=round_to_two_decimals(allocation.usd))

    def _backing_positions(self, catalog: EthenaCatalog) -> list[BackingPosition]:
        positions: list[BackingPosition] = []
        for entry in catalog.collateral:
            if not isinstance(entry, dict):
                continue
            exchange = str(entry.get("exchange") or "").strip()
            asset = str(entry.get("asset") or "").strip()
            usd = to_float(entry.get("usdAmount"))
            if not exchange or not asset or usd is None or usd <= 0:
                continue
            positions.append(BackingPosition(exchange=exchange, asset=asset, usd=usd))
        return positions

    def normalize_leaves(self, root: Node, allocations: Sequence[EthenaAllocation]) -> LeafSet:
        leaves = LeafSet()
        if not allocations:
            return leaves

        for position in self._backing_positions(allocations[0].catalog):
            node = Node(
                id=backing_node_id(position.exchange, position.asset),
                chain="global",
                name=f"{position.exchange}: {position.asset}",
                details=NodeDetails(kind="Investment"),
            )
            leaves.add(node, self.build_edge(root, node, position))
        return leaves
