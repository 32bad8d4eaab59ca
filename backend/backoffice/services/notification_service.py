# Overview: Fire-and-forget domain event broadcast built on blinker signals.

from __future__ import annotations

from blinker import Namespace
from flask import current_app

# Event names
PURCHASE_CREATED = "purchase.created"
SALE_CREATED = "sale.created"
SALE_CONFIRMED = "sale.confirmed"
NEXT_INVOICE_NUMBER = "invoice.next_number"

_signals = Namespace()


def signal_for(event_name: str):
    """Return the named signal so observers (websocket bridge, tests) can connect."""
    return _signals.signal(event_name)


def notify(event_name: str, payload: dict) -> None:
    """
    Broadcast an event to every connected receiver.

    Best-effort and non-transactional: called after the owning transaction
    has committed, and a failing receiver is logged, never raised.
    """
    if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
        return

    signal = _signals.signal(event_name)
    for receiver in list(signal.receivers_for(current_app._get_current_object())):
        try:
            receiver(current_app._get_current_object(), payload=payload)
        except Exception:
            current_app.logger.exception("Notification receiver failed for %s", event_name)
