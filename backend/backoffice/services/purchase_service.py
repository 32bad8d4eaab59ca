# Overview: Purchase order lifecycle; creation, header edits, cancellation and receiving.

"""
Purchase orders.

LIFECYCLE (status doubles as settlement status):
    PENDING -> PARTIALLY_PAID -> PAID      driven by payment_service
    PENDING | PARTIALLY_PAID -> CANCELLED  terminal

Receiving is a stock event independent of payment: it posts one COMPLETED
IN movement per line at the chosen branch, once per purchase.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Branch, Product, Purchase, PurchaseDetail, Supplier
from ..models.inventory import MOVEMENT_IN
from ..models.purchases import (
    PURCHASE_STATUS_CANCELLED,
    PURCHASE_STATUS_PAID,
    PURCHASE_STATUS_PARTIALLY_PAID,
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUSES,
)
from ..money import ZERO, to_money
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import notification_service
from .concurrency import lock_for_update, run_atomically
from .inventory_service import apply_movement, build_movement
from .invoice_service import next_invoice_number, peek_invoice_number
from .master_data_service import ensure_unique, find_active, find_any
from .order_lines import aggregate_totals, build_detail_rows
from .payment_service import PURCHASE_KIND, has_payments

# Header fields editable while the purchase is still open
UPDATABLE_FIELDS = {"invoice_number", "supplier_id", "date", "due_date", "notes"}
# Counterparty and document number are fixed once money has moved
FROZEN_ONCE_PAID = {"invoice_number", "supplier_id"}


def _load_product(product_id) -> Product:
    return find_active(Product, product_id, "Product")


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if purchase is None or purchase.is_deleted:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def create_purchase(
    *,
    supplier_id: int,
    details: list[dict],
    invoice_number: str | None = None,
    date: datetime | None = None,
    due_date: datetime | None = None,
    notes: str | None = None,
) -> Purchase:
    """
    Create a purchase with its lines in one transaction.

    invoice_number is generated (ORD-YYYY-NNNN) when not supplied.

    Raises:
        ConflictError: invoice number already used
        NotFoundError: supplier or a product missing
        ValidationError: no lines, invalid line amounts
    """
    def _op():
        find_active(Supplier, supplier_id, "Supplier")
        rows, amounts = build_detail_rows(PurchaseDetail, details, _load_product)
        totals = aggregate_totals(amounts)

        number = (invoice_number or "").strip()
        if number:
            ensure_unique(Purchase, "invoice_number", number, label="Purchase")
        else:
            number = next_invoice_number(current_app.config["PURCHASE_INVOICE_PREFIX"])

        purchase = Purchase(
            invoice_number=number,
            supplier_id=supplier_id,
            date=date or utcnow(),
            due_date=due_date,
            status=PURCHASE_STATUS_PENDING,
            notes=notes,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total=totals.total,
            paid_amount=ZERO,
            pending_amount=totals.total,
        )
        purchase.details = rows
        db.session.add(purchase)
        db.session.commit()
        return purchase

    purchase = run_atomically(_op)
    notification_service.notify(notification_service.PURCHASE_CREATED, purchase.to_dict())
    notification_service.notify(
        notification_service.NEXT_INVOICE_NUMBER,
        {"kind": "purchase", "next_number": next_purchase_invoice_number()},
    )
    return purchase


def update_purchase(purchase_id: int, patch: dict) -> Purchase:
    """Edit header fields; lines and amounts are fixed once created."""
    def _op():
        purchase = _lock_purchase(purchase_id)
        if purchase.status in (PURCHASE_STATUS_PAID, PURCHASE_STATUS_CANCELLED):
            raise ValidationError(f"Cannot modify a {purchase.status.lower()} purchase")

        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        changed = {
            key for key in FROZEN_ONCE_PAID
            if key in patch and patch[key] != getattr(purchase, key)
        }
        if changed and has_payments(PURCHASE_KIND, purchase.id):
            raise ValidationError(
                f"Cannot change {', '.join(sorted(changed))} on a purchase with payments"
            )

        if patch.get("invoice_number") and patch["invoice_number"] != purchase.invoice_number:
            ensure_unique(Purchase, "invoice_number", patch["invoice_number"], exclude_id=purchase.id, label="Purchase")
        if patch.get("supplier_id") is not None:
            find_active(Supplier, patch["supplier_id"], "Supplier")

        for key, value in patch.items():
            if key in ("invoice_number", "supplier_id", "date") and value is None:
                raise ValidationError(f"{key} cannot be null")
            setattr(purchase, key, value)
        db.session.commit()
        return purchase

    return run_atomically(_op)


def cancel_purchase(purchase_id: int) -> Purchase:
    def _op():
        purchase = _lock_purchase(purchase_id)
        if purchase.status == PURCHASE_STATUS_CANCELLED:
            raise ConflictError(f"Purchase {purchase_id} is already cancelled")
        if purchase.status == PURCHASE_STATUS_PAID:
            raise ValidationError("Cannot cancel a paid purchase")
        purchase.status = PURCHASE_STATUS_CANCELLED
        db.session.commit()
        return purchase

    return run_atomically(_op)


def receive_purchase(purchase_id: int, branch_id: int) -> Purchase:
    """
    Post the purchase into stock at branch_id.

    Every line becomes a COMPLETED IN movement valued at the line's unit
    price. Lines for products that do not manage stock are skipped.
    """
    def _op():
        purchase = _lock_purchase(purchase_id)
        if purchase.status == PURCHASE_STATUS_CANCELLED:
            raise ValidationError("Cannot receive a cancelled purchase")
        if purchase.received_at is not None:
            raise ConflictError(f"Purchase {purchase_id} was already received")
        find_active(Branch, branch_id, "Branch")

        for detail in purchase.details:
            product = detail.product
            if not product.manage_stock:
                continue
            movement = build_movement(
                product=product,
                branch_id=branch_id,
                quantity=detail.quantity,
                movement_type=MOVEMENT_IN,
                unit_cost=detail.unit_price,
                notes=f"Purchase {purchase.invoice_number} received",
            )
            apply_movement(movement)

        purchase.received_at = utcnow()
        purchase.received_branch_id = branch_id
        db.session.commit()

        current_app.logger.info("Purchase %s received at branch %s", purchase.invoice_number, branch_id)
        return purchase

    return run_atomically(_op)


def delete_purchase(purchase_id: int) -> Purchase:
    def _op():
        purchase = _lock_purchase(purchase_id)
        if has_payments(PURCHASE_KIND, purchase.id):
            raise ConflictError("Cannot delete a purchase that has payments")
        purchase.soft_delete()
        db.session.commit()
        return purchase

    return run_atomically(_op)


def restore_purchase(purchase_id: int) -> Purchase:
    def _op():
        purchase = find_any(Purchase, purchase_id, "Purchase")
        if not purchase.is_deleted:
            raise ConflictError(f"Purchase {purchase_id} is not deleted")
        find_active(Supplier, purchase.supplier_id, "Supplier")
        purchase.restore()
        db.session.commit()
        return purchase

    return run_atomically(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_purchase(purchase_id: int) -> Purchase:
    return find_active(Purchase, purchase_id, "Purchase")


def list_purchases(*, supplier_id: int | None = None, status: str | None = None) -> list[Purchase]:
    query = Purchase.active_query()
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if status:
        if status not in PURCHASE_STATUSES:
            raise ValidationError(f"Unknown purchase status: {status}")
        query = query.filter(Purchase.status == status)
    return query.order_by(Purchase.date.desc(), Purchase.id.desc()).all()


def purchase_stats() -> dict:
    rows = (
        db.session.query(
            Purchase.status,
            func.count(Purchase.id),
            func.coalesce(func.sum(Purchase.total), 0),
            func.coalesce(func.sum(Purchase.paid_amount), 0),
            func.coalesce(func.sum(Purchase.pending_amount), 0),
        )
        .filter(Purchase.deleted_at.is_(None))
        .group_by(Purchase.status)
        .all()
    )
    stats = {
        "total": 0,
        "pending": 0,
        "partially_paid": 0,
        "paid": 0,
        "cancelled": 0,
        "total_amount": ZERO,
        "paid_amount": ZERO,
        "pending_amount": ZERO,
    }
    keys = {
        PURCHASE_STATUS_PENDING: "pending",
        PURCHASE_STATUS_PARTIALLY_PAID: "partially_paid",
        PURCHASE_STATUS_PAID: "paid",
        PURCHASE_STATUS_CANCELLED: "cancelled",
    }
    for status, count, total, paid, pending in rows:
        stats["total"] += count
        stats[keys.get(status, status.lower())] = count
        if status == PURCHASE_STATUS_CANCELLED:
            continue
        stats["total_amount"] += to_money(total)
        stats["paid_amount"] += to_money(paid)
        stats["pending_amount"] += to_money(pending)
    return stats


def next_purchase_invoice_number() -> str:
    return peek_invoice_number(current_app.config["PURCHASE_INVOICE_PREFIX"])
