from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional


def parse_number(value: Any) -> Optional[float]:
    """
    Coerce a submitted numeric to float.

    - None / "" -> None
    - bool -> 1.0 / 0.0
    - "1,250,000" and "1 250 000" (thousands separators) -> 1250000.0
    - anything non-numeric or non-finite -> None
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float, Decimal)):
        result = float(value)
        return result if math.isfinite(result) else None
    if isinstance(value, str):
        s = value.strip().replace(",", "").replace(" ", "").replace("_", "")
        if not s:
            return None
        try:
            result = float(s)
        except ValueError:
            return None
        return result if math.isfinite(result) else None
    return None


def round_half_up(value: float, places: int = 0) -> float:
    """Commercial rounding (0.5 away from zero), not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def to_money(value: float) -> int:
    """Round to the nearest integer currency unit."""
    return int(round_half_up(value, 0))


WEIGHT_QUANTUM = Decimal("0.0001")


def to_weight(value: Any) -> Decimal:
    """Exact gram amount (4 places) for ledger and stock columns."""
    if value is None:
        return Decimal(0).quantize(WEIGHT_QUANTUM)
    if not isinstance(value, Decimal):
        value = Decimal(repr(float(value)))
    return value.quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)
