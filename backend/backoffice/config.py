# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Invoice numbers look like ORD-2026-0001
    PURCHASE_INVOICE_PREFIX = os.environ.get("PURCHASE_INVOICE_PREFIX", "ORD")
    SALE_INVOICE_PREFIX = os.environ.get("SALE_INVOICE_PREFIX", "VEN")
    INVOICE_NUMBER_PAD = 4

    # Currency units a customer must spend to earn one loyalty point (0 disables)
    LOYALTY_SPEND_PER_POINT = os.environ.get("LOYALTY_SPEND_PER_POINT", "10")

    NOTIFICATIONS_ENABLED = _env_flag("NOTIFICATIONS_ENABLED", True)

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if origin.strip()
    )
