# coinvault/money.py
"""
Monetary and quantity values stay Decimal (or the provider's decimal string)
from the wire through the cache. Floats only exist at the presentation edge.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr instead of the binary expansion
        value = str(value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def to_display_float(value: Any, places: int = 2) -> Optional[float]:
    d = to_decimal(value)
    if d is None or not d.is_finite():
        return None
    return float(round(d, places))


def scale_units(raw: Any, decimals: int) -> Optional[Decimal]:
    """Integer base units (wei, satoshi, token units) -> whole units."""
    d = to_decimal(raw)
    if d is None:
        return None
    return d.scaleb(-decimals)
