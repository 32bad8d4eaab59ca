# Overview: Transaction helpers shared by every mutating service operation.

from __future__ import annotations

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Inventory, orders and discount codes are additionally protected by version_id.
    """
    return query.with_for_update()


def run_atomically(func):
    """
    Execute a DB operation as one unit of work.

    func is expected to commit on success. Any exception rolls the session
    back before propagating, so a failed operation never leaves partial
    writes behind. Nothing is retried here: an optimistic-lock conflict
    (StaleDataError) surfaces as ConflictError and the caller decides
    whether to re-submit.
    """
    try:
        return func()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified concurrently; reload and retry") from exc
    except Exception:
        db.session.rollback()
        raise
