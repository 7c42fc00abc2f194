from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from exposure.services.data_service import SnapshotNotFoundError, SnapshotService
from exposure.services.search_index import ALL, SearchFilters

router = APIRouter()
_service: SnapshotService | None = None


def get_snapshot_service() -> SnapshotService:
    # Built on first use so .env values loaded at startup are honored.
    global _service
    if _service is None:
        _service = SnapshotService()
    return _service


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/graph/{node_id}")
def get_graph(
    node_id: str,
    protocol: Annotated[str | None, Query()] = None,
    chain: Annotated[str | None, Query()] = None,
    svc: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    try:
        return svc.get_snapshot(node_id, protocol=protocol, chain=chain).to_wire()
    except SnapshotNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (OSError, ValueError) as exc:
        raise HTTPException(status_code=500, detail=f"Snapshot read failed: {exc}") from exc


@router.head("/graph/{node_id}")
def head_graph(
    node_id: str,
    protocol: Annotated[str | None, Query()] = None,
    chain: Annotated[str | None, Query()] = None,
    svc: SnapshotService = Depends(get_snapshot_service),
) -> Response:
    if not svc.snapshot_exists(node_id, protocol=protocol):
        return Response(status_code=404)
    return Response(status_code=200)


@router.get("/graph/{node_id}/treemap")
def get_treemap(
    node_id: str,
    focus: Annotated[str | None, Query()] = None,
    width: Annotated[float, Query(ge=0)] = 0,
    height: Annotated[float, Query(ge=0)] = 0,
    protocol: Annotated[str | None, Query()] = None,
    chain: Annotated[str | None, Query()] = None,
    others: Annotated[list[str] | None, Query()] = None,
    svc: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    try:
        payload = svc.get_treemap(
            node_id,
            focus=focus,
            width=width,
            height=height,
            protocol=protocol,
            chain=chain,
            others=others,
        )
    except SnapshotNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (OSError, ValueError) as exc:
        raise HTTPException(status_code=500, detail=f"Treemap build failed: {exc}") from exc
    return payload.model_dump(by_alias=True, mode="json")


@router.get("/search-index")
def get_search_index(svc: SnapshotService = Depends(get_snapshot_service)) -> list[dict[str, Any]]:
    try:
        return [entry.to_wire() for entry in svc.get_search_index()]
    except (OSError, ValueError) as exc:
        raise HTTPException(status_code=500, detail=f"Search index read failed: {exc}") from exc


@router.get("/search")
def search(
    protocol: Annotated[str, Query()] = ALL,
    chain: Annotated[str, Query()] = ALL,
    curator: Annotated[str, Query()] = ALL,
    q: Annotated[str, Query()] = "",
    apy_min: Annotated[str, Query(alias="apyMin")] = "",
    apy_max: Annotated[str, Query(alias="apyMax")] = "",
    svc: SnapshotService = Depends(get_snapshot_service),
) -> dict[str, Any]:
    filters = SearchFilters(protocol=protocol, chain=chain, curator=curator, query=q, apy_min=apy_min, apy_max=apy_max)
    try:
        return svc.search(filters)
    except (OSError, ValueError) as exc:
        raise HTTPException(status_code=500, detail=f"Search failed: {exc}") from exc
