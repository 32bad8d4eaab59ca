# Overview: Sequential invoice numbers per (prefix, calendar year).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from flask import current_app

from ..extensions import db
from ..models import InvoiceSequence
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError


def format_invoice_number(prefix: str, year: int, number: int, pad: int = 4) -> str:
    return f"{prefix}-{year}-{number:0{pad}d}"


def _current_number(prefix: str, year: int) -> int | None:
    return (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(prefix=prefix, year=year)
        .scalar()
    )


def next_invoice_number(prefix: str, year: int | None = None) -> str:
    """
    Allocate the next invoice number for prefix/year, e.g. ORD-2026-0001.

    Runs inside the caller's transaction (flushes, never commits) so the
    allocation rolls back together with the document that uses it.
    Uses an atomic UPDATE next_number = next_number + 1; the first
    allocation of a year inserts the row. If a concurrent writer inserted
    it first the operation fails with ConflictError and can be re-submitted.
    """
    if not prefix:
        raise ValidationError("Invoice prefix is required")
    if year is None:
        year = utcnow().year
    pad = current_app.config.get("INVOICE_NUMBER_PAD", 4)

    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.prefix == prefix, InvoiceSequence.year == year)
        .values(next_number=InvoiceSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        allocated = _current_number(prefix, year) - 1
    else:
        db.session.add(InvoiceSequence(prefix=prefix, year=year, next_number=2))
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Invoice sequence was allocated concurrently; retry") from exc
        allocated = 1

    return format_invoice_number(prefix, year, allocated, pad)


def peek_invoice_number(prefix: str, year: int | None = None) -> str:
    """Preview the number the next allocation would return, without allocating."""
    if year is None:
        year = utcnow().year
    pad = current_app.config.get("INVOICE_NUMBER_PAD", 4)
    current = _current_number(prefix, year)
    return format_invoice_number(prefix, year, current or 1, pad)
