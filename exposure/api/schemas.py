from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LendingPosition = Literal["collateral", "borrow"]


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys; absent optionals stay absent."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class NodeDetails(WireModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    kind: str | None = None
    subtype: str | None = None
    curator: str | None = None
    health_rate: float | None = Field(default=None, alias="healthRate")
    underlying_symbol: str | None = Field(default=None, alias="underlyingSymbol")


class Node(WireModel):
    id: str
    chain: str | None = None
    name: str
    display_name: str | None = Field(default=None, alias="displayName")
    protocol: str | None = None
    details: NodeDetails | None = None
    apy: float | None = None
    tvl_usd: float | None = Field(default=None, alias="tvlUsd")
    logo_keys: list[str] | None = Field(default=None, alias="logoKeys")

    @property
    def kind(self) -> str:
        if self.details is None or not self.details.kind:
            return ""
        return self.details.kind.strip()


class Edge(WireModel):
    from_: str = Field(alias="from")
    to: str
    allocation_usd: float = Field(alias="allocationUsd")
    lending_position: LendingPosition | None = Field(default=None, alias="lendingPosition")


class GraphSnapshot(WireModel):
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)

    @property
    def root(self) -> Node | None:
        return self.nodes[0] if self.nodes else None


class SearchIndexEntry(WireModel):
    id: str
    chain: str
    protocol: str
    name: str
    display_name: str | None = Field(default=None, alias="displayName")
    node_id: str = Field(alias="nodeId")
    apy: float | None = None
    curator: str | None = None
    tvl_usd: float | None = Field(default=None, alias="tvlUsd")
    logo_keys: list[str] | None = Field(default=None, alias="logoKeys")
    type_label: str | None = Field(default=None, alias="typeLabel")

    def to_wire(self) -> dict[str, Any]:
        # apy/curator/tvlUsd are always present (null when unknown).
        payload = self.model_dump(by_alias=True, mode="json")
        for key in ("displayName", "logoKeys", "typeLabel"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload


class TreemapTile(WireModel):
    name: str
    value: float
    original_value: float = Field(alias="originalValue")
    percent: float
    node_id: str = Field(alias="nodeId")
    node: Node | None = Field(default=None, alias="fullNode")
    lending_position: LendingPosition | None = Field(default=None, alias="lendingPosition")
    is_terminal: bool = Field(default=False, alias="isTerminal")
    is_others: bool = Field(default=False, alias="isOthers")
    child_ids: list[str] | None = Field(default=None, alias="childIds")
    child_count: int | None = Field(default=None, alias="childCount")


class TreemapMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(alias="nodeId")
    focus: str
    min_percent: float | None = Field(default=None, alias="minPercent")
    generated_at: datetime = Field(alias="generatedAt")


class TreemapResponse(BaseModel):
    metadata: TreemapMetadata
    data: list[dict[str, Any]]
    status: Literal["success", "error"] = "success"
