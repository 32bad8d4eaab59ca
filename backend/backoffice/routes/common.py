# Overview: Helpers shared by API routes; maps service errors to HTTP statuses and parses request values.

from flask import current_app

from ..extensions import db
from ..time_utils import parse_iso_date, parse_iso_datetime
from ..validation import ConflictError, NotFoundError, ValidationError

# Errors a service raises on purpose; anything else is a 500
DOMAIN_ERRORS = (ValidationError, NotFoundError, ConflictError)


def error_response(exc: Exception):
    """ValidationError -> 400, NotFoundError -> 404, ConflictError -> 409."""
    if isinstance(exc, NotFoundError):
        return {"error": str(exc)}, 404
    if isinstance(exc, ConflictError):
        return {"error": str(exc)}, 409
    return {"error": str(exc)}, 400


def internal_error(action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return {"error": "Internal server error"}, 500


def parse_datetime_field(payload: dict, key: str):
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime") from None


def parse_date_arg(raw: str | None, key: str):
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{key} must be YYYY-MM-DD") from None


def require_int(payload: dict, key: str) -> int:
    value = payload.get(key)
    if value is None:
        raise ValidationError(f"Missing required field: {key}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


def optional_int(payload: dict, key: str) -> int | None:
    if payload.get(key) is None:
        return None
    return require_int(payload, key)
