from __future__ import annotations

from typing import Literal

from exposure.api.schemas import NodeDetails

NodeTypeCategory = Literal["yield-vault", "lending", "staked-locked", "default"]

_CHAIN_LABELS = {
    "eth": "Ethereum",
    "ethereum": "Ethereum",
    "arb": "Arbitrum",
    "arbitrum": "Arbitrum",
    "op": "Optimism",
    "optimism": "Optimism",
    "base": "Base",
    "polygon": "Polygon",
    "matic": "Polygon",
    "hyper": "Hyper",
    "hyperliquid": "Hyper",
    "uni": "Unichain",
    "unichain": "Unichain",
    "global": "Global",
}

_COMPACT_SUFFIXES = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))


def format_chain_label(value: str | None) -> str:
    if not value:
        return "Unknown"
    slug = value.strip().lower()
    if slug in _CHAIN_LABELS:
        return _CHAIN_LABELS[slug]
    return slug[0].upper() + slug[1:] if slug else "Unknown"


def format_usd_compact(value: float | None) -> str:
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    for threshold, suffix in _COMPACT_SUFFIXES:
        if magnitude >= threshold:
            scaled = f"{magnitude / threshold:.1f}".rstrip("0").rstrip(".")
            return f"{sign}${scaled}{suffix}"
    return f"{sign}${magnitude:,.2f}"


def apy_to_percent(apy: float) -> float:
    """Some sources report APY as a fraction and others as percent; values above 1 are taken as percent.

    A genuine fractional APY above 100% is misread by this rule.
    """
    return apy if apy > 1 else apy * 100


def format_apy(apy: float | None) -> str:
    if apy is None:
        return "-"
    percent = round(apy_to_percent(apy), 2)
    return f"{percent:g}%"


def node_type_label(details: NodeDetails | None, label_override: str | None = None) -> str:
    override = (label_override or "").strip()
    if override:
        return override
    if details is None:
        return ""
    return (details.subtype or "").strip() or (details.kind or "").strip()


def classify_node_type(details: NodeDetails | None, label_override: str | None = None) -> NodeTypeCategory:
    kind = ((details.kind if details else None) or "").strip().lower()
    subtype = ((details.subtype if details else None) or "").strip().lower()
    label = node_type_label(details, label_override).lower()

    if kind == "yield" or "vault" in subtype or "vault" in label:
        return "yield-vault"
    if "lending" in kind or "lending" in label:
        return "lending"
    if kind in ("staked", "locked") or "staked" in label or "locked" in label:
        return "staked-locked"
    return "default"
