from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Any, Optional

WEI_DECIMALS = 18
CENT = Decimal("0.01")
MAX_PRECISION = 80


def parse_int(value: Any) -> Optional[int]:
    """
    Parse an integer field the way indexers send them: "0x5208", "21000", 21000.
    Returns None for missing or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    s = str(value).strip().lower()
    if not s:
        return None
    try:
        if s.startswith("0x"):
            return int(s, 16)
        return int(s)
    except ValueError:
        return None


def to_base_units(value: Any, decimals: int = WEI_DECIMALS) -> int:
    """
    Convert a decimal amount ("0.01", 0.5, Decimal) to integer base units,
    truncating toward zero. "0x..." strings and ints are taken as base units already.
    Anything unparseable, negative or non-finite becomes 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)

    if isinstance(value, str):
        s = value.strip()
        if s.lower().startswith("0x"):
            return max(parse_int(s) or 0, 0)
    elif isinstance(value, float):
        # repr keeps the shortest round-tripping digits (0.1 -> "0.1", not 0.1000000000000000055...)
        s = repr(value)
    else:
        s = str(value)

    try:
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return 0
    if not d.is_finite() or d <= 0:
        return 0

    with localcontext() as ctx:
        ctx.prec = MAX_PRECISION
        scaled = d.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(base_units: int, decimals: int = WEI_DECIMALS) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = MAX_PRECISION
        return Decimal(int(base_units)).scaleb(-decimals)


def format_units(base_units: int, decimals: int = WEI_DECIMALS, places: int = 6) -> str:
    """Display string with a fixed number of places, truncated (never rounded up)."""
    with localcontext() as ctx:
        ctx.prec = MAX_PRECISION
        d = from_base_units(base_units, decimals).quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)
    return f"{d:f}"


def to_fiat(base_units: int, rate: Any, decimals: int = WEI_DECIMALS) -> Decimal:
    try:
        r = Decimal(str(rate))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    if not r.is_finite() or r < 0:
        return Decimal("0.00")
    with localcontext() as ctx:
        ctx.prec = MAX_PRECISION
        return (from_base_units(base_units, decimals) * r).quantize(CENT, rounding=ROUND_DOWN)
