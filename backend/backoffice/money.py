# Overview: Fixed-point helpers for currency (2 dp) and quantity (3 dp) values.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from .validation import coerce_decimal

MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")
PERCENT_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Any, field: str = "amount") -> Decimal:
    """Round to 2 decimal places (half up). None counts as zero."""
    if value is None:
        return ZERO
    return coerce_decimal(value, field).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    if value is None:
        return Decimal("0.000")
    return coerce_decimal(value, field).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def to_percent(value: Any, field: str = "percentage") -> Decimal:
    if value is None:
        return ZERO
    return coerce_decimal(value, field).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(Decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP))


def quantity_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(Decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP))
