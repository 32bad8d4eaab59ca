# Overview: Customer-specific operations on top of master data (loyalty, purchase stats, tiers).

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, CustomerCategory
from ..money import ZERO, to_money
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update, run_atomically


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None or customer.is_deleted:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def find_category_for_amount(amount) -> CustomerCategory | None:
    """Active category with the highest min_purchase_amount <= amount."""
    return (
        CustomerCategory.active_query()
        .filter(
            CustomerCategory.is_active.is_(True),
            CustomerCategory.min_purchase_amount <= to_money(amount),
        )
        .order_by(CustomerCategory.min_purchase_amount.desc())
        .first()
    )


def recalculate_category(customer: Customer) -> None:
    category = find_category_for_amount(customer.total_purchases)
    if category is not None and category.id != customer.category_id:
        customer.category_id = category.id


def record_purchase(customer: Customer, amount: Decimal, points: int = 0) -> None:
    """
    Accumulate a confirmed sale on the customer (no commit).

    total_purchases += amount, last_purchase_date = now, loyalty points
    added, and the category re-evaluated.
    """
    customer.total_purchases = to_money(customer.total_purchases) + to_money(amount)
    customer.last_purchase_date = utcnow()
    if points > 0:
        customer.loyalty_points = (customer.loyalty_points or 0) + points
    recalculate_category(customer)


def update_purchase_stats(customer_id: int, amount) -> Customer:
    def _op():
        value = to_money(amount, "amount")
        if value <= 0:
            raise ValidationError("amount must be > 0")
        customer = _lock_customer(customer_id)
        record_purchase(customer, value)
        db.session.commit()
        return customer

    return run_atomically(_op)


def add_loyalty_points(customer_id: int, points: int) -> Customer:
    def _op():
        if not isinstance(points, int) or isinstance(points, bool) or points <= 0:
            raise ValidationError("points must be a positive integer")
        customer = _lock_customer(customer_id)
        customer.loyalty_points = (customer.loyalty_points or 0) + points
        recalculate_category(customer)
        db.session.commit()
        return customer

    return run_atomically(_op)


def redeem_loyalty_points(customer_id: int, points: int) -> Customer:
    def _op():
        if not isinstance(points, int) or isinstance(points, bool) or points <= 0:
            raise ValidationError("points must be a positive integer")
        customer = _lock_customer(customer_id)
        if (customer.loyalty_points or 0) < points:
            raise ValidationError("Customer does not have enough loyalty points")
        customer.loyalty_points -= points
        db.session.commit()
        return customer

    return run_atomically(_op)


def search_customers(term: str) -> list[Customer]:
    like = f"%{(term or '').strip()}%"
    return (
        Customer.active_query()
        .filter(or_(Customer.name.ilike(like), Customer.nit.ilike(like), Customer.email.ilike(like)))
        .order_by(Customer.name)
        .all()
    )


def find_by_nit(nit: str) -> Customer:
    customer = Customer.active_query().filter(Customer.nit == nit).first()
    if customer is None:
        raise NotFoundError(f"Customer with NIT {nit} not found")
    return customer


def top_customers(limit: int = 10) -> list[Customer]:
    limit = max(1, min(limit, 100))
    return (
        Customer.active_query()
        .order_by(Customer.total_purchases.desc(), Customer.id)
        .limit(limit)
        .all()
    )


def customer_stats() -> dict:
    active = Customer.active_query()
    total = active.count()
    with_category = active.filter(Customer.category_id.isnot(None)).count()
    points = db.session.query(func.coalesce(func.sum(Customer.loyalty_points), 0)).filter(
        Customer.deleted_at.is_(None)
    ).scalar()
    purchases = db.session.query(func.coalesce(func.sum(Customer.total_purchases), 0)).filter(
        Customer.deleted_at.is_(None)
    ).scalar()
    deleted = Customer.query.filter(Customer.deleted_at.isnot(None)).count()
    return {
        "total": total,
        "with_category": with_category,
        "without_category": total - with_category,
        "deleted": deleted,
        "total_loyalty_points": int(points or 0),
        "total_purchases": to_money(purchases or ZERO),
    }
