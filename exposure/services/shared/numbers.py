from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any


def round_to_two_decimals(value: float) -> float:
    return round(float(value), 2)


def scale_by_decimals(raw_amount: int | float | str, decimals: int) -> float:
    """Convert a base-unit amount (wei-like) into token units.

    Integers, decimal strings and scientific notation (``5e+21``) are accepted.
    """
    try:
        amount = Decimal(str(raw_amount).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {raw_amount!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {raw_amount!r}")
    return float(amount / (Decimal(10) ** int(decimals)))


def usd_value(raw_amount: int | float | str, decimals: int, price_usd: float) -> float:
    return round_to_two_decimals(scale_by_decimals(raw_amount, decimals) * price_usd)


def to_float(value: Any) -> float | None:
    """Finite float or None; bools and unparsable values are rejected."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(Decimal(value.strip()))
        except (InvalidOperation, ValueError):
            return None
    else:
        return None
    return number if math.isfinite(number) else None
