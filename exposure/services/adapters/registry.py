from __future__ import annotations

from typing import Any, Callable

from exposure.services.adapters.base import Adapter
from exposure.services.adapters.ethena import EthenaAdapter
from exposure.services.adapters.euler import EulerAdapter
from exposure.services.adapters.resolv import ResolvAdapter

ADAPTER_FACTORIES: dict[str, Callable[[], Adapter[Any, Any]]] = {
    "ethena": EthenaAdapter,
    "euler": EulerAdapter,
    "resolv": ResolvAdapter,
}


def create_adapters(adapter_ids: list[str]) -> list[Adapter[Any, Any]]:
    unknown = [adapter_id for adapter_id in adapter_ids if adapter_id not in ADAPTER_FACTORIES]
    if unknown:
        raise ValueError(f"Unknown adapter(s): {', '.join(unknown)}. Known: {', '.join(sorted(ADAPTER_FACTORIES))}")
    return [ADAPTER_FACTORIES[adapter_id]() for adapter_id in adapter_ids]
