"""Utilities for working with point amounts and price ratios in KidLeague."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Union

RATIO_PLACES = Decimal("0.0001")

AmountLike = Union[Decimal, int, float, str]


def to_ratio(value: AmountLike) -> Decimal:
    """Convert ``value`` to a :class:`~decimal.Decimal` with four decimal places."""

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = Decimal(value)
    else:  # pragma: no cover
        raise TypeError(f"Unsupported ratio type: {type(value)!r}")

    return result.quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def ceil_points(value: Decimal) -> int:
    """Round ``value`` up to a whole number of points."""

    return int(value.to_integral_value(rounding=ROUND_CEILING))


def require_non_negative(amount: int, *, name: str = "amount") -> int:
    """Ensure ``amount`` is zero or greater."""

    if amount < 0:
        raise ValueError(f"{name} must be zero or greater.")
    return amount
