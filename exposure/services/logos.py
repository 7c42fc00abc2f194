from __future__ import annotations

import re

from exposure.api.schemas import Node
from exposure.services.ids import canonical_protocol_key

PROTOCOL_LOGO_KEYS = frozenset({"ethena", "euler", "gauntlet", "infinifi", "midas", "morpho", "resolv", "sky", "yuzu"})
CHAIN_LOGO_KEYS = frozenset({"eth", "arb", "base", "plasma", "uni"})

_TOKEN_LIKE = re.compile(r"^[A-Za-z0-9.]{2,10}$")
_UPPER_TOKEN_LIKE = re.compile(r"^[A-Z0-9.]{2,10}$")
_LOWER_HYPHENATED_KEY = re.compile(r"^[a-z0-9.]+(?:-[a-z0-9.]+)+$")
_CHAIN_ALIASES = {"ethereum": "eth", "arbitrum": "arb", "unichain": "uni"}


def is_token_like(value: str) -> bool:
    return bool(_TOKEN_LIKE.match(value.strip()))


def is_upper_token_like(value: str) -> bool:
    return bool(_UPPER_TOKEN_LIKE.match(value.strip()))


def normalize_chain_key(chain: str) -> str:
    normalized = chain.strip().lower()
    return _CHAIN_ALIASES.get(normalized, normalized)


def protocol_logo_path(protocol: str) -> str:
    return f"/logos/protocols/{canonical_protocol_key(protocol)}.svg"


def chain_logo_path(chain: str) -> str:
    return f"/logos/chains/{normalize_chain_key(chain)}.svg"


def asset_logo_path(symbol: str) -> str:
    if not symbol or len(symbol) > 20:
        return ""
    return f"/logos/assets/{symbol.strip().lower()}.svg"


def has_protocol_logo(protocol: str | None) -> bool:
    return bool(protocol) and canonical_protocol_key(protocol) in PROTOCOL_LOGO_KEYS


def has_chain_logo(chain: str | None) -> bool:
    return bool(chain) and normalize_chain_key(chain) in CHAIN_LOGO_KEYS


def node_logos(node: Node) -> list[str]:
    """Logo paths for a node; market names like ``WETH/USDC`` yield two asset logos."""
    primary = [key for key in node.logo_keys or [] if key] or None
    if primary is None and node.details and node.details.underlying_symbol:
        symbol = node.details.underlying_symbol.strip()
        primary = [symbol] if symbol else None

    if primary:
        paths = [path for path in (asset_logo_path(key) for key in primary) if path]
        if node.protocol and has_protocol_logo(node.protocol):
            paths.append(protocol_logo_path(node.protocol))
        if paths:
            return paths

    name = node.name.strip()
    if _LOWER_HYPHENATED_KEY.match(name) and len(name) <= 20:
        return [asset_logo_path(name)]

    slash_parts = name.split("/")
    if len(slash_parts) == 2 and all(is_token_like(part) for part in slash_parts):
        return [asset_logo_path(part) for part in slash_parts]

    dash_parts = name.split("-")
    if len(dash_parts) == 2 and all(is_upper_token_like(part) for part in dash_parts):
        return [asset_logo_path(part) for part in dash_parts]

    if re.match(r"^[A-Za-z0-9.]+$", name) and len(name) <= 10:
        return [asset_logo_path(name)]

    if node.protocol and has_protocol_logo(node.protocol):
        return [protocol_logo_path(node.protocol)]
    return []


def fallback_monogram(text: str) -> str:
    trimmed = text.strip()
    return trimmed[:2].upper() if trimmed else "?"
