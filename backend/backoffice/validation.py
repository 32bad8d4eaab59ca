from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text

from backoffice.time_utils import parse_iso_datetime


# Largest amount a Numeric(12, 2) money column can hold
MAX_MONEY = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem or business rule violation."""


class InsufficientStockError(ValidationError):
    """400-level: completing a movement would drive stock below zero."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU, already completed)."""


class NotFoundError(LookupError):
    """404-level: entity absent or soft-deleted."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may write, and which a create must carry."""
    writable_fields: set[str]
    required_on_create: frozenset[str] = frozenset()


def coerce_decimal(value: Any, field_name: str) -> Decimal:
    """
    Coerce JSON-ish input into Decimal without going through binary floats.

    Floats are converted via their str() so 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def _coerce_int(key: str, value: Any) -> int:
    # bool is an int subclass; ids and counts never accept it
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    digits = text[1:] if text[:1] == "-" else text
    if not digits.isdecimal():
        if "." in text or "e" in text.lower():
            raise ValidationError(f"{key} must be a plain integer")
        raise ValidationError(f"{key} must be an integer")
    return int(text)


def _coerce_numeric(key: str, scale: int | None, value: Any) -> Decimal:
    result = coerce_decimal(value, key)
    if scale is not None and result != result.quantize(Decimal(1).scaleb(-scale)):
        raise ValidationError(f"{key} allows at most {scale} decimal places")
    if abs(result) > MAX_MONEY:
        raise ValidationError(f"{key} is out of range")
    return result


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _coerce_text(col, value: Any) -> str:
    text = str(value).strip()
    if not text and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    length = getattr(col.type, "length", None)
    if length and len(text) > length:
        raise ValidationError(f"{col.key} exceeds max length {length}")
    return text


def _coerce_value(col, value: Any):
    coltype = col.type
    if isinstance(coltype, Boolean):
        return value if isinstance(value, bool) else bool(value)
    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)
    if isinstance(coltype, Numeric):
        return _coerce_numeric(col.key, coltype.scale, value)
    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        return _coerce_text(col, value)
    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean a JSON body against the model's columns and a write policy.

    Keys outside ``policy.writable_fields`` are rejected. On create
    (``partial=False``) every ``required_on_create`` key must be present; on
    update only the keys sent are checked. Values are coerced by column type:
    integers strictly, Numeric columns to Decimal within their scale, DateTime
    from ISO-8601, strings trimmed and length checked.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(set(policy.required_on_create) - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce_value(col, raw)
    return patch


def require_fields(payload: dict, *fields: str) -> None:
    """Reject payloads missing any of the given keys (or carrying null)."""
    missing = [f for f in fields if payload.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def enforce_rules_product(patch: dict) -> None:
    """Price and cost must be non-negative; the price >= cost rule lives in products_service."""
    for field in ("price", "cost"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
