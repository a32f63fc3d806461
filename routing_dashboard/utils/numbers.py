"""
Numeric helpers for nullable warehouse fields.

Every aggregate coming back from the warehouse goes through these helpers so
a missing value stays ``None`` ("unknown") and is never silently turned into
zero. Zero is only produced where a caller asks for it explicitly.
"""
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

MSAT_PER_SAT = 1000
MSAT_PER_BTC = 100_000_000_000


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        # str() gives the shortest repr, so 0.12345 stays 0.12345
        return Decimal(str(value))
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def coerce_number(value: Any) -> Optional[float]:
    """Nullable numeric field -> float, or None when missing/unparseable."""
    dec = _to_decimal(value)
    return float(dec) if dec is not None else None


def coerce_int(value: Any) -> Optional[int]:
    """Nullable integer field -> int (truncating), or None."""
    dec = _to_decimal(value)
    return int(dec) if dec is not None else None


def count_or_zero(value: Any) -> int:
    """COUNT()/SUM() results: a missing aggregate over no rows means zero."""
    result = coerce_int(value)
    return result if result is not None else 0


def round_half_up(value: Any, places: int = 2) -> Optional[float]:
    dec = _to_decimal(value)
    if dec is None:
        return None
    quantum = Decimal(1).scaleb(-places)
    return float(dec.quantize(quantum, rounding=ROUND_HALF_UP))


def to_percent(fraction: Any, places: int = 2) -> Optional[float]:
    """
    Scale a stored fraction (0..1) to a percentage, rounded half-up.

    This is the only place shares are multiplied by 100; callers must hand
    it raw warehouse fractions, never values that were already scaled.
    """
    dec = _to_decimal(fraction)
    if dec is None:
        return None
    return round_half_up(dec * 100, places)


def ratio_percent(numerator: Any, denominator: Any, places: int = 2) -> Optional[float]:
    """numerator / denominator * 100, or None when the denominator is 0/missing."""
    num = _to_decimal(numerator)
    den = _to_decimal(denominator)
    if num is None or den is None or den == 0:
        return None
    return round_half_up(num * 100 / den, places)


def format_percent(value: Optional[float], places: int = 2) -> str:
    """Render an already-scaled percentage, e.g. 12.35 -> '12.35%'."""
    if value is None:
        return "N/A"
    return f"{value:.{places}f}%"


def msat_to_sat(msat: Any) -> Optional[int]:
    """Millisatoshi -> satoshi by floor division (truncating, never rounding)."""
    dec = _to_decimal(msat)
    if dec is None:
        return None
    return math.floor(dec / MSAT_PER_SAT)


def msat_to_btc(msat: Any) -> Optional[float]:
    dec = _to_decimal(msat)
    if dec is None:
        return None
    return float(dec / MSAT_PER_BTC)
