from __future__ import annotations

import re

ID_SEPARATOR = ":"
DEFAULT_CHAIN = "global"

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s")

# Protocols published under several versioned keys collapse onto one base key.
_MULTI_VERSION_PROTOCOLS = ("midas", "morpho")


def normalize_node_id(value: str) -> str:
    return value.strip().lower()


def to_slug(value: str) -> str:
    return _SLUG_INVALID.sub("-", value.strip().lower()).strip("-")


def build_node_id(chain: str, protocol: str, key: str) -> str:
    """Canonical ``<chain>:<protocol>:<key>`` id, lowercased."""
    parts = [chain.strip().lower(), protocol.strip().lower(), key.strip().lower()]
    if not all(parts):
        raise ValueError(f"Cannot build node id from empty segment: {parts!r}")
    node_id = ID_SEPARATOR.join(parts)
    if _WHITESPACE.search(node_id):
        raise ValueError(f"Node id must not contain whitespace: {node_id!r}")
    return node_id


def chain_from_node_id(node_id: str) -> str | None:
    first = node_id.split(ID_SEPARATOR)[0].strip().lower()
    return first or None


def protocol_from_node_id(node_id: str) -> str | None:
    parts = node_id.split(ID_SEPARATOR)
    if len(parts) < 2:
        return None
    return parts[1].strip().lower() or None


def canonical_protocol_key(protocol: str) -> str:
    normalized = protocol.strip().lower()
    for base in _MULTI_VERSION_PROTOCOLS:
        if normalized.startswith(base):
            return base
    return normalized


def same_node_id(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return normalize_node_id(left) == normalize_node_id(right)
