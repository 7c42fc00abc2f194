"""Euler adapter.

Graph model (per chain):

- Governed Euler Earn vaults are roots of kind "Yield"; their strategies are
  EVK vaults and become the allocation leaves, weighted by allocated assets.
- EVK liability vaults listed by the indexer open-interest endpoint are roots
  too; their leaves are the collateral vaults, weighted by open-interest USD.

Sources: the Goldsky subgraph (vault state), the euler-labels registry (display
names and curator entities), the app price API (USD conversion, the subgraph
exposes no USD fields) and the indexer open-interest mapping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from exposure.api.schemas import Edge, Node, NodeDetails
from exposure.services.adapters.base import LeafSet
from exposure.services.ids import build_node_id
from exposure.services.shared.http import FetchError, fetch_json, graphql_request, settle_all
from exposure.services.shared.numbers import round_to_two_decimals, scale_by_decimals, to_float, usd_value

logger = logging.getLogger(__name__)

EULER_PROTOCOL = "euler"

EULER_GOLDSKY_SUBGRAPH_BASE_URL = (
    "https://api.goldsky.com/api/public/project_cm4iagnemt1wp01xn4gh1agft/subgraphs"
)
EULER_LABELS_BASE_URL = "https://raw.githubusercontent.com/euler-xyz/euler-labels/master"
EULER_INDEXER_BASE_URL = "https://indexer-main.euler.finance"
EULER_APP_API_BASE_URL = "https://app.euler.finance"

EVK_PAGE_SIZE = 1000
DEFAULT_ASSET_DECIMALS = 18
RAY_DECIMALS = 27


def euler_subgraph_url(network: str) -> str:
    return f"{EULER_GOLDSKY_SUBGRAPH_BASE_URL}/euler-v2-{network}/latest/gn"


@dataclass(frozen=True)
class EulerChainConfig:
    chain_id: int
    chain_key: str
    subgraph_url: str


EULER_CHAIN_CONFIGS: tuple[EulerChainConfig, ...] = tuple(
    EulerChainConfig(chain_id, chain_key, euler_subgraph_url(network))
    for chain_id, chain_key, network in (
        (1, "eth", "mainnet"),
        (8453, "base", "base"),
        (1923, "swell", "swell"),
        (146, "sonic", "sonic"),
        (60808, "bob", "bob"),
        (80094, "bera", "berachain"),
        (43114, "avax", "avalanche"),
        (42161, "arb", "arbitrum"),
        (130, "uni", "unichain"),
        (57073, "ink", "ink"),
        (56, "bsc", "bsc"),
        (999, "hyperevm", "hyperevm"),
        (10, "op", "optimism"),
        (100, "gnosis", "gnosis"),
        (480, "worldchain", "worldchain"),
        (239, "tac", "tac"),
        (9745, "plasma", "plasma"),
        (5000, "mantle", "mantle"),
    )
)

EARN_VAULTS_QUERY = """
{
  eulerEarnVaults(
    first: 100
    orderBy: totalAssets
    orderDirection: desc
    where: { perspectives_contains: ["eulerEarnGovernedPerspective"] }
  ) {
    id
    name
    symbol
    asset
    curator
    totalAssets
    strategies {
      strategy
      allocatedAssets
    }
  }
}
"""

EVK_VAULTS_BY_IDS_QUERY = """
query ($ids: [Bytes!]!) {
  eulerVaults(where: { id_in: $ids }, first: 1000) {
    id
    name
    symbol
    asset
    decimals
    state {
      totalBorrows
      cash
      supplyApy
    }
  }
}
"""


@dataclass(frozen=True)
class EarnStrategy:
    strategy: str
    allocated_assets: str


@dataclass(frozen=True)
class EarnVault:
    id: str
    name: str
    asset: str
    curator: str | None
    total_assets: str
    strategies: tuple[EarnStrategy, ...] = ()


@dataclass(frozen=True)
class EvkVault:
    id: str
    name: str
    asset: str
    decimals: int
    total_borrows: str = "0"
    cash: str = "0"
    supply_apy: str | None = None


@dataclass
class EulerChainCatalog:
    chain_id: int
    chain_key: str
    earn_vaults: list[EarnVault] = field(default_factory=list)
    evk_vaults: dict[str, EvkVault] = field(default_factory=dict)
    labels_by_vault: dict[str, dict[str, Any]] = field(default_factory=dict)
    entities_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    entity_name_by_address: dict[str, str] = field(default_factory=dict)
    prices_by_asset: dict[str, float] = field(default_factory=dict)
    open_interest_by_liability: dict[str, dict[str, float]] = field(default_factory=dict)


@dataclass(frozen=True)
class EulerAllocation:
    kind: Literal["earnVault", "evkVault"]
    chain: EulerChainCatalog
    earn_vault: EarnVault | None = None
    evk_vault: EvkVault | None = None
    collateral_open_interest_usd: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyAllocation:
    allocation_usd: float


def euler_node_id(chain_key: str, address: str) -> str:
    return build_node_id(chain_key, EULER_PROTOCOL, address)


def parse_ray_apy(raw: str | None) -> float | None:
    if not raw:
        return None
    try:
        return scale_by_decimals(raw, RAY_DECIMALS)
    except (TypeError, ValueError):
        return None


def _parse_earn_vault(raw: dict[str, Any]) -> EarnVault:
    return EarnVault(
        id=str(raw["id"]).lower(),
        name=str(raw.get("name") or raw["id"]),
        asset=str(raw.get("asset") or "").lower(),
        curator=str(raw["curator"]).lower() if raw.get("curator") else None,
        total_assets=str(raw.get("totalAssets") or "0"),
        strategies=tuple(
            EarnStrategy(strategy=str(item["strategy"]).lower(), allocated_assets=str(item.get("allocatedAssets") or "0"))
            for item in raw.get("strategies") or []
            if item.get("strategy")
        ),
    )


def _parse_evk_vault(raw: dict[str, Any]) -> EvkVault:
    state = raw.get("state") or {}
    return EvkVault(
        id=str(raw["id"]).lower(),
        name=str(raw.get("name") or raw["id"]),
        asset=str(raw.get("asset") or "").lower(),
        decimals=int(raw.get("decimals") or DEFAULT_ASSET_DECIMALS),
        total_borrows=str(state.get("totalBorrows") or "0"),
        cash=str(state.get("cash") or "0"),
        supply_apy=state.get("supplyApy"),
    )


def fetch_earn_vaults(subgraph_url: str) -> list[EarnVault]:
    data = graphql_request(subgraph_url, EARN_VAULTS_QUERY)
    return [_parse_earn_vault(item) for item in data.get("eulerEarnVaults") or []]


def fetch_evk_vaults(addresses: Sequence[str], subgraph_url: str) -> list[EvkVault]:
    ids = sorted({address.lower() for address in addresses})
    vaults: list[EvkVault] = []
    for start in range(0, len(ids), EVK_PAGE_SIZE):
        chunk = ids[start : start + EVK_PAGE_SIZE]
        data = graphql_request(subgraph_url, EVK_VAULTS_BY_IDS_QUERY, {"ids": chunk})
        vaults.extend(_parse_evk_vault(item) for item in data.get("eulerVaults") or [])
    return vaults


def fetch_labels_vaults(chain_id: int) -> dict[str, dict[str, Any]]:
    payload = fetch_json(f"{EULER_LABELS_BASE_URL}/{chain_id}/vaults.json", not_found_default={})
    return {address.lower(): record for address, record in (payload or {}).items() if isinstance(record, dict)}


def fetch_label_entities(chain_id: int) -> dict[str, dict[str, Any]]:
    payload = fetch_json(f"{EULER_LABELS_BASE_URL}/{chain_id}/entities.json", not_found_default={})
    return {entity_id: record for entity_id, record in (payload or {}).items() if isinstance(record, dict)}


def fetch_prices(chain_id: int) -> dict[str, float]:
    payload = fetch_json(f"{EULER_APP_API_BASE_URL}/api/v1/price?chainId={chain_id}", not_found_default={})
    prices: dict[str, float] = {}
    for address, record in (payload or {}).items():
        price = to_float(record.get("price")) if isinstance(record, dict) else None
        if price is not None:
            prices[address.lower()] = price
    return prices


def fetch_open_interest(chain_id: int) -> dict[str, dict[str, float]]:
    """liability vault -> {collateral vault -> open interest USD}, addresses lowercased."""
    payload = fetch_json(
        f"{EULER_INDEXER_BASE_URL}/v1/vault/open-interest?chainId={chain_id}",
        not_found_default={},
    )
    by_liability: dict[str, dict[str, float]] = {}
    for liability, collaterals in (payload or {}).items():
        if not isinstance(collaterals, dict):
            continue
        weights: dict[str, float] = {}
        for collateral, usd in collaterals.items():
            value = to_float(usd)
            if value is not None:
                weights[collateral.lower()] = value
        by_liability[liability.lower()] = weights
    return by_liability


def earn_asset_decimals(earn_vault: EarnVault, evk_vaults: dict[str, EvkVault]) -> int:
    """Earn vaults do not expose their asset decimals; borrow them from a strategy sharing the asset."""
    for strategy in earn_vault.strategies:
        evk = evk_vaults.get(strategy.strategy)
        if evk is not None and evk.asset == earn_vault.asset:
            return evk.decimals
    return DEFAULT_ASSET_DECIMALS


def vault_label_name(chain: EulerChainCatalog, address: str) -> str | None:
    record = chain.labels_by_vault.get(address.lower())
    name = record.get("name") if record else None
    return str(name) if name else None


def vault_curator(chain: EulerChainCatalog, address: str) -> str | None:
    record = chain.labels_by_vault.get(address.lower())
    entity = record.get("entity") if record else None
    if not entity:
        return None
    entity_ids = entity if isinstance(entity, list) else [entity]
    names = []
    for entity_id in entity_ids:
        name = str(chain.entities_by_id.get(entity_id, {}).get("name") or entity_id).strip()
        if name:
            names.append(name)
    return ", ".join(names) if names else None


class EulerAdapter:
    id = EULER_PROTOCOL

    def __init__(self, chain_configs: Sequence[EulerChainConfig] = EULER_CHAIN_CONFIGS) -> None:
        self.chain_configs = tuple(chain_configs)
        self._catalog: list[EulerChainCatalog] | None = None

    def _fetch_chain_catalog(self, config: EulerChainConfig) -> EulerChainCatalog:
        sources, failures = settle_all(
            {
                "earn": lambda: fetch_earn_vaults(config.subgraph_url),
                "labels": lambda: fetch_labels_vaults(config.chain_id),
                "entities": lambda: fetch_label_entities(config.chain_id),
                "prices": lambda: fetch_prices(config.chain_id),
                "open_interest": lambda: fetch_open_interest(config.chain_id),
            },
            max_workers=5,
        )
        if failures:
            first_key = sorted(failures)[0]
            raise FetchError(f"Euler {config.chain_key}: {first_key} fetch failed: {failures[first_key]}")

        catalog = EulerChainCatalog(
            chain_id=config.chain_id,
            chain_key=config.chain_key,
            earn_vaults=sources["earn"],
            labels_by_vault=sources["labels"],
            entities_by_id=sources["entities"],
            prices_by_asset=sources["prices"],
            open_interest_by_liability=sources["open_interest"],
        )
        for entity in catalog.entities_by_id.values():
            name = str(entity.get("name") or "").strip()
            if not name:
                continue
            for address in (entity.get("addresses") or {}).keys():
                catalog.entity_name_by_address[address.lower()] = name

        # EVK universe: open-interest liabilities and collaterals plus earn strategies.
        evk_addresses: set[str] = set()
        for liability, collaterals in catalog.open_interest_by_liability.items():
            evk_addresses.add(liability)
            evk_addresses.update(collaterals.keys())
        for earn_vault in catalog.earn_vaults:
            evk_addresses.update(strategy.strategy for strategy in earn_vault.strategies)

        if evk_addresses:
            evk_vaults = fetch_evk_vaults(sorted(evk_addresses), config.subgraph_url)
            catalog.evk_vaults = {vault.id: vault for vault in evk_vaults}
        return catalog

    def fetch_catalog(self) -> list[EulerChainCatalog]:
        if self._catalog is not None:
            return self._catalog
        jobs = {config.chain_key: (lambda config=config: self._fetch_chain_catalog(config)) for config in self.chain_configs}
        catalogs, failures = settle_all(jobs)
        if not catalogs:
            first_error = next(iter(failures.values()), None)
            raise FetchError(
                "Euler: no chain catalogs fetched" + (f" (first error: {first_error})" if first_error else "")
            )
        order = {config.chain_key: index for index, config in enumerate(self.chain_configs)}
        self._catalog = sorted(catalogs.values(), key=lambda item: order.get(item.chain_key, len(order)))
        logger.info("Euler catalogs fetched for %s/%s chains", len(self._catalog), len(self.chain_configs))
        return self._catalog

    def get_asset_by_allocations(self, catalog: Sequence[EulerChainCatalog]) -> dict[str, list[EulerAllocation]]:
        result: dict[str, list[EulerAllocation]] = {}
        for chain in catalog:
            for earn_vault in chain.earn_vaults:
                if not earn_vault.strategies:
                    continue
                result[euler_node_id(chain.chain_key, earn_vault.id)] = [
                    EulerAllocation(kind="earnVault", chain=chain, earn_vault=earn_vault)
                ]
            for liability, collaterals in chain.open_interest_by_liability.items():
                evk_vault = chain.evk_vaults.get(liability)
                if evk_vault is None:
                    continue
                result[euler_node_id(chain.chain_key, evk_vault.id)] = [
                    EulerAllocation(
                        kind="evkVault",
                        chain=chain,
                        evk_vault=evk_vault,
                        collateral_open_interest_usd=collaterals,
                    )
                ]
        return result

    def _earn_root(self, allocation: EulerAllocation) -> Node | None:
        vault = allocation.earn_vault
        if vault is None:
            return None
        chain = allocation.chain
        decimals = earn_asset_decimals(vault, chain.evk_vaults)
        price = chain.prices_by_asset.get(vault.asset)
        tvl_usd = None if price is None else usd_value(vault.total_assets, decimals, price)
        curator = chain.entity_name_by_address.get(vault.curator) if vault.curator else None
        return Node(
            id=euler_node_id(chain.chain_key, vault.id),
            chain=chain.chain_key,
            name=vault_label_name(chain, vault.id) or vault.name,
            protocol=EULER_PROTOCOL,
            details=NodeDetails(kind="Yield", curator=curator),
            tvl_usd=tvl_usd,
            apy=0.0,
        )

    def _evk_root(self, allocation: EulerAllocation) -> Node | None:
        vault = allocation.evk_vault
        if vault is None:
            return None
        chain = allocation.chain
        price = chain.prices_by_asset.get(vault.asset)
        total_raw = int(vault.total_borrows) + int(vault.cash)
        tvl_usd = None if price is None else usd_value(total_raw, vault.decimals, price)
        return Node(
            id=euler_node_id(chain.chain_key, vault.id),
            chain=chain.chain_key,
            name=vault_label_name(chain, vault.id) or vault.name,
            protocol=EULER_PROTOCOL,
            details=NodeDetails(kind="Yield", curator=vault_curator(chain, vault.id)),
            tvl_usd=tvl_usd,
            apy=parse_ray_apy(vault.supply_apy),
        )

    def build_root_node(self, asset_key: str, allocations: Sequence[EulerAllocation]) -> Node | None:
        if not allocations:
            return None
        allocation = allocations[0]
        if allocation.kind == "earnVault":
            return self._earn_root(allocation)
        return self._evk_root(allocation)

    def build_edge(self, root: Node, allocation_node: Node, allocation: StrategyAllocation) -> Edge:
        return Edge(from_=root.id, to=allocation_node.id, allocation_usd=allocation.allocation_usd)

    def _vault_leaf(self, chain: EulerChainCatalog, evk_vault: EvkVault) -> Node:
        return Node(
            id=euler_node_id(chain.chain_key, evk_vault.id),
            chain=chain.chain_key,
            name=vault_label_name(chain, evk_vault.id) or evk_vault.name,
            protocol=EULER_PROTOCOL,
            details=NodeDetails(kind="Yield", curator=vault_curator(chain, evk_vault.id)),
            apy=parse_ray_apy(evk_vault.supply_apy),
        )

    def normalize_leaves(self, root: Node, allocations: Sequence[EulerAllocation]) -> LeafSet:
        leaves = LeafSet()
        if not allocations:
            return leaves
        allocation = allocations[0]
        chain = allocation.chain

        if allocation.kind == "earnVault" and allocation.earn_vault is not None:
            vault = allocation.earn_vault
            decimals = earn_asset_decimals(vault, chain.evk_vaults)
            price = chain.prices_by_asset.get(vault.asset)
            if price is None:
                logger.warning("Euler %s: no price for asset %s, dropping strategy leaves", root.id, vault.asset)
                return leaves
            for strategy in vault.strategies:
                evk_vault = chain.evk_vaults.get(strategy.strategy)
                if evk_vault is None:
                    continue
                try:
                    allocated_usd = usd_value(strategy.allocated_assets, decimals, price)
                except (TypeError, ValueError):
                    logger.debug("Euler %s: unparsable allocation for %s", root.id, strategy.strategy)
                    continue
                node = self._vault_leaf(chain, evk_vault)
                usd = StrategyAllocation(allocation_usd=allocated_usd)
                leaves.add(node, self.build_edge(root, node, usd))
            return leaves

        for collateral, open_interest_usd in allocation.collateral_open_interest_usd.items():
            evk_vault = chain.evk_vaults.get(collateral)
            if evk_vault is None:
                continue
            node = self._vault_leaf(chain, evk_vault)
            usd = StrategyAllocation(allocation_usd=round_to_two_decimals(open_interest_usd))
            leaves.add(node, self.build_edge(root, node, usd))
        return leaves
