# Overview: One payment ledger for purchases and sales, parameterized by order kind.

"""
Payment ledger.

Purchases and sales settle the same way; the differences are captured
in an OrderKind:
- which order/payment models and foreign key are involved
- where the settlement status is stored (Purchase.status itself,
  Sale.payment_status next to the sale lifecycle status)
- which order states accept payments (sales only once CONFIRMED)

INVARIANTS (hold after every operation):
- paid_amount == sum of COMPLETED payment amounts
- pending_amount == total - paid_amount >= 0
- settlement status == derive_status(total, paid_amount)

Payments are never hard-deleted; cancel them instead.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date as date_type, datetime
from decimal import Decimal

from ..extensions import db
from ..models import PaymentMethod, Purchase, PurchasePayment, Sale, SalePayment
from ..models.purchases import (
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUSES,
    PURCHASE_STATUS_CANCELLED,
)
from ..models.sales import (
    SALE_STATUS_CANCELLED,
    SALE_STATUS_CONFIRMED,
    SETTLEMENT_PAID,
    SETTLEMENT_PARTIALLY_PAID,
    SETTLEMENT_PENDING,
)
from ..money import ZERO, to_money
from ..time_utils import day_bounds, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_atomically
from .master_data_service import find_active


@dataclass(frozen=True)
class OrderKind:
    name: str
    label: str
    order_model: type
    payment_model: type
    order_fk: str
    counterparty_fk: str
    status_attr: str
    cancelled_status: str
    # None: any non-cancelled order accepts payments
    payable_statuses: frozenset | None = None


PURCHASE_KIND = OrderKind(
    name="purchase",
    label="Purchase",
    order_model=Purchase,
    payment_model=PurchasePayment,
    order_fk="purchase_id",
    counterparty_fk="supplier_id",
    status_attr="status",
    cancelled_status=PURCHASE_STATUS_CANCELLED,
)

SALE_KIND = OrderKind(
    name="sale",
    label="Sale",
    order_model=Sale,
    payment_model=SalePayment,
    order_fk="sale_id",
    counterparty_fk="customer_id",
    status_attr="payment_status",
    cancelled_status=SALE_STATUS_CANCELLED,
    payable_statuses=frozenset({SALE_STATUS_CONFIRMED}),
)


def derive_status(total, paid) -> str:
    """paid == 0 -> PENDING; paid < total -> PARTIALLY_PAID; otherwise PAID."""
    total = to_money(total)
    paid = to_money(paid)
    if paid <= 0:
        return SETTLEMENT_PENDING
    if paid < total:
        return SETTLEMENT_PARTIALLY_PAID
    return SETTLEMENT_PAID


def recompute_settlement(kind: OrderKind, order, paid: Decimal) -> None:
    """Write paid/pending/status back onto the order."""
    total = to_money(order.total)
    paid = to_money(paid)
    if paid < 0 or paid > total:
        raise ValidationError(f"{kind.label} paid amount {paid} is outside 0..{total}")
    order.paid_amount = paid
    order.pending_amount = total - paid
    if order.status == kind.cancelled_status and kind.status_attr == "status":
        return
    setattr(order, kind.status_attr, derive_status(total, paid))


def _lock_order(kind: OrderKind, order_id: int):
    order = lock_for_update(db.session.query(kind.order_model).filter_by(id=order_id)).first()
    if order is None or order.is_deleted:
        raise NotFoundError(f"{kind.label} {order_id} not found")
    return order


def _lock_payment(kind: OrderKind, payment_id: int):
    payment = lock_for_update(db.session.query(kind.payment_model).filter_by(id=payment_id)).first()
    if payment is None or payment.is_deleted:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def _ensure_payable(kind: OrderKind, order) -> None:
    if order.status == kind.cancelled_status:
        raise ValidationError(f"Cannot add payments to a cancelled {kind.name}")
    if kind.payable_statuses is not None and order.status not in kind.payable_statuses:
        allowed = ", ".join(sorted(kind.payable_statuses)).lower()
        raise ValidationError(f"Payments can only be added to {allowed} {kind.name}s")


def _validate_method(payment_method_id: int, bank_account: str | None) -> PaymentMethod:
    method = find_active(PaymentMethod, payment_method_id, "Payment method")
    if not method.is_active:
        raise ValidationError("Payment method is not active")
    if method.requires_bank_account and not (bank_account or "").strip():
        raise ValidationError("This payment method requires a bank account")
    return method


def _validate_amount(amount) -> Decimal:
    value = to_money(amount, "amount")
    if value <= 0:
        raise ValidationError("amount must be > 0")
    return value


def _ensure_within_pending(amount: Decimal, available: Decimal) -> None:
    if amount > available:
        raise ValidationError(f"Amount {amount} exceeds pending balance of {available}")


# =============================================================================
# PAYMENT OPERATIONS
# =============================================================================

def apply_payment(
    kind: OrderKind,
    order_id: int,
    *,
    amount,
    payment_method_id: int,
    date: datetime | None = None,
    reference_number: str | None = None,
    bank_account: str | None = None,
    notes: str | None = None,
    status: str = PAYMENT_STATUS_COMPLETED,
):
    """
    Record a payment against an order.

    A COMPLETED payment immediately raises paid_amount; a PENDING one is
    stored and counts only once complete_payment is called.

    Raises:
        ValidationError: amount > pending balance, cancelled/unpayable
            order, inactive method, missing bank account
        NotFoundError: order or payment method missing
    """
    def _op():
        if status not in (PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_PENDING):
            raise ValidationError("New payments must be COMPLETED or PENDING")
        value = _validate_amount(amount)
        order = _lock_order(kind, order_id)
        _ensure_payable(kind, order)
        _validate_method(payment_method_id, bank_account)
        _ensure_within_pending(value, to_money(order.pending_amount))

        payment = kind.payment_model(
            payment_method_id=payment_method_id,
            amount=value,
            date=date or utcnow(),
            status=status,
            reference_number=reference_number,
            bank_account=bank_account,
            notes=notes,
        )
        setattr(payment, kind.order_fk, order.id)
        db.session.add(payment)

        if status == PAYMENT_STATUS_COMPLETED:
            recompute_settlement(kind, order, to_money(order.paid_amount) + value)

        db.session.commit()
        return payment

    return run_atomically(_op)


def complete_payment(kind: OrderKind, payment_id: int):
    """PENDING -> COMPLETED; applies the amount to the order."""
    def _op():
        payment = _lock_payment(kind, payment_id)
        if payment.status == PAYMENT_STATUS_COMPLETED:
            raise ConflictError(f"Payment {payment_id} is already completed")
        if payment.status == PAYMENT_STATUS_CANCELLED:
            raise ConflictError(f"Payment {payment_id} is cancelled")
        order = _lock_order(kind, getattr(payment, kind.order_fk))
        _ensure_payable(kind, order)
        value = to_money(payment.amount)
        _ensure_within_pending(value, to_money(order.pending_amount))

        payment.status = PAYMENT_STATUS_COMPLETED
        recompute_settlement(kind, order, to_money(order.paid_amount) + value)
        db.session.commit()
        return payment

    return run_atomically(_op)


def update_payment(
    kind: OrderKind,
    payment_id: int,
    *,
    amount=None,
    payment_method_id: int | None = None,
    date: datetime | None = None,
    reference_number: str | None = None,
    bank_account: str | None = None,
    notes: str | None = None,
):
    """
    Edit a non-cancelled payment.

    For a COMPLETED payment the old amount is reverted first
    (temp_paid = paid - old) and the new amount is validated against
    total - temp_paid, so the payment is never counted twice.
    """
    def _op():
        payment = _lock_payment(kind, payment_id)
        if payment.status == PAYMENT_STATUS_CANCELLED:
            raise ValidationError("Cannot modify a cancelled payment")
        order = _lock_order(kind, getattr(payment, kind.order_fk))
        _ensure_payable(kind, order)

        method_id = payment_method_id if payment_method_id is not None else payment.payment_method_id
        account = bank_account if bank_account is not None else payment.bank_account
        _validate_method(method_id, account)

        old_amount = to_money(payment.amount)
        new_amount = old_amount if amount is None else _validate_amount(amount)

        counted = payment.status == PAYMENT_STATUS_COMPLETED
        temp_paid = to_money(order.paid_amount) - (old_amount if counted else ZERO)
        available = to_money(order.total) - temp_paid
        _ensure_within_pending(new_amount, available)

        payment.amount = new_amount
        payment.payment_method_id = method_id
        payment.bank_account = account
        if date is not None:
            payment.date = date
        if reference_number is not None:
            payment.reference_number = reference_number
        if notes is not None:
            payment.notes = notes

        if counted:
            recompute_settlement(kind, order, temp_paid + new_amount)

        db.session.commit()
        return payment

    return run_atomically(_op)


def cancel_payment(kind: OrderKind, payment_id: int):
    """Cancel a payment; a COMPLETED one is taken back out of paid_amount."""
    def _op():
        payment = _lock_payment(kind, payment_id)
        if payment.status == PAYMENT_STATUS_CANCELLED:
            raise ConflictError(f"Payment {payment_id} is already cancelled")
        order = _lock_order(kind, getattr(payment, kind.order_fk))

        was_counted = payment.status == PAYMENT_STATUS_COMPLETED
        payment.status = PAYMENT_STATUS_CANCELLED
        if was_counted:
            recompute_settlement(kind, order, to_money(order.paid_amount) - to_money(payment.amount))

        db.session.commit()
        return payment

    return run_atomically(_op)


def delete_payment(kind: OrderKind, payment_id: int):
    """Always rejected once the payment exists; payments are cancelled, not deleted."""
    find_active(kind.payment_model, payment_id, "Payment")
    raise ValidationError("Payments cannot be deleted; cancel the payment instead")


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(kind: OrderKind, payment_id: int):
    return find_active(kind.payment_model, payment_id, "Payment")


def list_payments(
    kind: OrderKind,
    *,
    order_id: int | None = None,
    counterparty_id: int | None = None,
    payment_method_id: int | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list:
    model = kind.payment_model
    query = model.active_query()
    if order_id is not None:
        query = query.filter(getattr(model, kind.order_fk) == order_id)
    if counterparty_id is not None:
        order = kind.order_model
        query = query.join(order, getattr(model, kind.order_fk) == order.id).filter(
            getattr(order, kind.counterparty_fk) == counterparty_id
        )
    if payment_method_id is not None:
        query = query.filter(model.payment_method_id == payment_method_id)
    if status:
        if status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {status}")
        query = query.filter(model.status == status)
    if start is not None:
        query = query.filter(model.date >= start)
    if end is not None:
        query = query.filter(model.date <= end)
    return query.order_by(model.date.asc(), model.id.asc()).all()


def has_payments(kind: OrderKind, order_id: int) -> bool:
    model = kind.payment_model
    return db.session.query(
        model.query.filter(getattr(model, kind.order_fk) == order_id).exists()
    ).scalar()


def payment_stats(kind: OrderKind) -> dict:
    """Count and amount of live payments per status."""
    model = kind.payment_model
    rows = (
        db.session.query(model.status, db.func.count(model.id), db.func.sum(model.amount))
        .filter(model.deleted_at.is_(None))
        .group_by(model.status)
        .all()
    )
    by_status = {status: {"count": 0, "amount": ZERO} for status in PAYMENT_STATUSES}
    for status, count, amount in rows:
        by_status[status] = {"count": count, "amount": to_money(amount or 0)}
    return {
        "total": sum(entry["count"] for entry in by_status.values()),
        "by_status": by_status,
        "completed_amount": by_status[PAYMENT_STATUS_COMPLETED]["amount"],
    }


def daily_payments(kind: OrderKind, day: date_type | None = None) -> dict:
    """Payments dated on one calendar day (UTC); only COMPLETED ones count toward the total."""
    day = day or utcnow().date()
    start, end = day_bounds(day)
    model = kind.payment_model
    payments = (
        model.active_query()
        .filter(model.date >= start, model.date < end)
        .order_by(model.date.asc(), model.id.asc())
        .all()
    )
    total = ZERO
    for payment in payments:
        if payment.status == PAYMENT_STATUS_COMPLETED:
            total += to_money(payment.amount)
    return {
        "date": day.isoformat(),
        "count": len(payments),
        "completed_amount": total,
        "payments": payments,
    }
