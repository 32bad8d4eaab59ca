# Overview: Supplier lookups and statistics on top of master data.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Purchase, Supplier
from ..models.purchases import PURCHASE_STATUS_CANCELLED
from ..money import to_money
from .master_data_service import find_active


def search_suppliers(term: str | None) -> list[Supplier]:
    like = f"%{(term or '').strip()}%"
    return (
        Supplier.active_query()
        .filter(
            or_(
                Supplier.name.ilike(like),
                Supplier.nit.ilike(like),
                Supplier.contact_name.ilike(like),
                Supplier.email.ilike(like),
            )
        )
        .order_by(Supplier.name)
        .all()
    )


def _purchase_totals(*criteria) -> tuple[int, object, object]:
    count, total, pending = (
        db.session.query(
            func.count(Purchase.id),
            func.coalesce(func.sum(Purchase.total), 0),
            func.coalesce(func.sum(Purchase.pending_amount), 0),
        )
        .filter(
            Purchase.deleted_at.is_(None),
            Purchase.status != PURCHASE_STATUS_CANCELLED,
            *criteria,
        )
        .one()
    )
    return count, to_money(total), to_money(pending)


def supplier_stats() -> dict:
    """Supplier head counts plus what is owed across non-cancelled purchases."""
    active = Supplier.active_query()
    total = active.count()
    enabled = active.filter(Supplier.is_active.is_(True)).count()
    deleted = Supplier.query.filter(Supplier.deleted_at.isnot(None)).count()
    purchases, purchased, pending = _purchase_totals()
    return {
        "total": total,
        "active": enabled,
        "inactive": total - enabled,
        "deleted": deleted,
        "purchase_count": purchases,
        "total_purchased": purchased,
        "total_pending": pending,
    }


def supplier_purchase_stats(supplier_id: int) -> dict:
    supplier = find_active(Supplier, supplier_id, "Supplier")
    purchases, purchased, pending = _purchase_totals(Purchase.supplier_id == supplier.id)
    return {
        "supplier_id": supplier.id,
        "purchase_count": purchases,
        "total_purchased": purchased,
        "total_pending": pending,
    }
