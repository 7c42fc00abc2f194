"""Multi-chain deployments of one canonical asset.

Every deployment of an asset shares the canonical asset's economics, so its
snapshot is the canonical snapshot with the root re-keyed.
"""

from __future__ import annotations

from exposure.api.schemas import GraphSnapshot
from exposure.services.ids import chain_from_node_id, normalize_node_id

DEPLOYMENTS: dict[str, dict[str, dict[str, str]]] = {
    "ethena": {
        # USDe
        "eth:ethena:0x4c9edd5852cd905f086c759e8383e09bff1e68b3": {
            "eth": "0x4c9edd5852cd905f086c759e8383e09bff1e68b3",
            "arb": "0x5d3a1ff2b6bab83b63cd9ad0787074081a52ef34",
        },
        # sUSDe
        "eth:ethena:0x9d39a5de30e57443bff2a8307a4256c8797a3497": {
            "eth": "0x9d39a5de30e57443bff2a8307a4256c8797a3497",
            "arb": "0x211cc4dd073734da055fbf44a2b4667d5e5fe5d2",
        },
    },
    "resolv": {
        # USR
        "eth:resolv:0x66a1e37c9b0eaddca17d3662d6c05f4decf3e110": {
            "eth": "0x66a1e37c9b0eaddca17d3662d6c05f4decf3e110",
            "base": "0x35e5db674d8e93a03d814fa0ada70731efe8a4b9",
            "bsc": "0x2492d0006411af6c8bbb1c8afc1b0197350a79e9",
            "bera": "0x2492d0006411af6c8bbb1c8afc1b0197350a79e9",
            "hyperevm": "0x0ad339d66bf4aed5ce31c64bc37b3244b6394a77",
            "soneium": "0xb1b385542b6e80f77b94393ba8342c3af699f15c",
            "tac": "0xb1b385542b6e80f77b94393ba8342c3af699f15c",
            "arb": "0x2492d0006411af6c8bbb1c8afc1b0197350a79e9",
            "plasma": "0xb1b385542b6e80f77b94393ba8342c3af699f15c",
        },
        # wstUSR
        "eth:resolv:0x1202f5c7b4b9e47a1a484e8b270be34dbbc75055": {
            "eth": "0x1202f5c7b4b9e47a1a484e8b270be34dbbc75055",
            "base": "0xb67675158b412d53fe6b68946483ba920b135ba1",
            "soneium": "0x2a52b289ba68bbd02676640aa9f605700c9e5699",
            "hyperevm": "0x46c1c168ca597b9e5423aa7081a0dce782caeaab",
            "tac": "0x2a52b289ba68bbd02676640aa9f605700c9e5699",
            "arb": "0x66cfbd79257dc5217903a36293120282548e2254",
            "plasma": "0x2a52b289ba68bbd02676640aa9f605700c9e5699",
        },
        # RLP
        "eth:resolv:0x4956b52ae2ff65d74ca2d61207523288e4528f96": {
            "eth": "0x4956b52ae2ff65d74ca2d61207523288e4528f96",
            "base": "0xc31389794ffac23331e0d9f611b7953f90aa5fdc",
            "bsc": "0x35e5db674d8e93a03d814fa0ada70731efe8a4b9",
            "bera": "0x35e5db674d8e93a03d814fa0ada70731efe8a4b9",
            "hyperevm": "0x0a3d8466f5de586fa5f6de117301e2f90bcc5c48",
            "soneium": "0x35533f54740f1f1aa4179e57ba37039dfa16868b",
            "tac": "0x35533f54740f1f1aa4179e57ba37039dfa16868b",
            "arb": "0x35e5db674d8e93a03d814fa0ada70731efe8a4b9",
            "plasma": "0x35533f54740f1f1aa4179e57ba37039dfa16868b",
        },
    },
}


def to_deployment_node_ids(protocol: str, canonical_root_id: str, chain_to_address: dict[str, str]) -> list[str]:
    """Deployment ids for every chain entry, excluding the canonical id itself."""
    canonical = normalize_node_id(canonical_root_id)
    proto = protocol.strip().lower()
    out: list[str] = []
    for chain, address in chain_to_address.items():
        deployment_id = f"{chain.strip().lower()}:{proto}:{address.strip().lower()}"
        if deployment_id != canonical:
            out.append(deployment_id)
    return out


def get_deployment_node_ids(protocol: str, root_node_id: str) -> list[str]:
    table = DEPLOYMENTS.get(protocol.strip().lower(), {})
    canonical = normalize_node_id(root_node_id)
    chain_to_address = table.get(canonical)
    if chain_to_address is None:
        return []
    return to_deployment_node_ids(protocol, canonical, chain_to_address)


def clone_snapshot_with_root_id(snapshot: GraphSnapshot, next_root_id: str) -> GraphSnapshot:
    """Copy of ``snapshot`` re-rooted at ``next_root_id``.

    Only the root's id and chain change, and edge endpoints equal to the old
    root id are rewritten. Returns ``snapshot`` itself when there is nothing
    to change.
    """
    if not snapshot.nodes:
        return snapshot
    root = snapshot.nodes[0]
    base_root_id = root.id
    if next_root_id == base_root_id:
        return snapshot

    root_update: dict[str, str] = {"id": next_root_id}
    next_chain = chain_from_node_id(next_root_id)
    if next_chain:
        root_update["chain"] = next_chain

    next_edges = []
    for edge in snapshot.edges:
        update: dict[str, str] = {}
        if edge.from_ == base_root_id:
            update["from_"] = next_root_id
        if edge.to == base_root_id:
            update["to"] = next_root_id
        next_edges.append(edge.model_copy(update=update) if update else edge)

    return snapshot.model_copy(
        update={
            "nodes": [root.model_copy(update=root_update), *snapshot.nodes[1:]],
            "edges": next_edges,
        }
    )
