# Overview: Sale lifecycle; creation with discounts, confirmation (stock, usage, loyalty), cancellation.

"""
Sales.

LIFECYCLE:
    PENDING -> CONFIRMED -> CANCELLED
    PENDING -> CANCELLED

Creating a sale and confirming it are two separate transactions. Creation
only prices the order. Confirmation is one unit of work that:
- posts a COMPLETED OUT movement per stock-managed line at the sale's branch
- records one use of the attached discount code
- accumulates purchase stats and loyalty points on the customer
Any failure (insufficient stock, exhausted code) rolls all of it back.

Settlement (payment_status) is owned by payment_service and only starts
once the sale is CONFIRMED.

Known gap: cancelling a CONFIRMED sale reverses neither stock nor loyalty.
"""
from __future__ import annotations

from datetime import date as date_type, datetime
from decimal import Decimal, ROUND_FLOOR

from flask import current_app

from ..extensions import db
from ..models import Branch, Customer, DiscountCode, Product, Sale, SaleDetail, SaleDiscount
from ..models.inventory import MOVEMENT_OUT
from ..models.sales import (
    MANUAL_DISCOUNT_AMOUNT,
    MANUAL_DISCOUNT_PERCENT,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_CONFIRMED,
    SALE_STATUS_PENDING,
    SALE_STATUSES,
    SETTLEMENT_PENDING,
)
from ..money import HUNDRED, ZERO, to_money, to_percent
from ..time_utils import day_bounds, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import customers_service, discount_service, notification_service
from .concurrency import lock_for_update, run_atomically
from .inventory_service import apply_movement, build_movement
from .invoice_service import next_invoice_number, peek_invoice_number
from .master_data_service import ensure_unique, find_active, find_any
from .order_lines import aggregate_totals, apply_line_amounts, build_detail_rows, line_amounts_from_detail
from .payment_service import SALE_KIND, has_payments

UPDATABLE_FIELDS = {"date", "due_date", "notes"}
GUEST_FIELDS = ("name", "nit", "email", "phone")


def _load_product(product_id) -> Product:
    product = find_active(Product, product_id, "Product")
    if not product.is_active:
        raise ValidationError(f"Product {product.id} is not active")
    return product


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None or sale.is_deleted:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def _ensure_pending(sale: Sale, action: str) -> None:
    if sale.status != SALE_STATUS_PENDING:
        raise ValidationError(f"Only pending sales can be {action}")


# =============================================================================
# DISCOUNTS
# =============================================================================

def _normalize_manual_discounts(discounts) -> list[dict]:
    normalized = []
    for index, raw in enumerate(discounts or [], start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Discount {index} must be an object")
        discount_type = raw.get("discount_type") or raw.get("type")
        if discount_type not in (MANUAL_DISCOUNT_PERCENT, MANUAL_DISCOUNT_AMOUNT):
            raise ValidationError(f"Discount {index}: type must be 'percent' or 'amount'")
        if discount_type == MANUAL_DISCOUNT_PERCENT:
            value = to_percent(raw.get("value"), "value")
            if value <= 0 or value > HUNDRED:
                raise ValidationError(f"Discount {index}: percent must be greater than 0 and at most 100")
        else:
            value = to_money(raw.get("value"), "value")
            if value <= 0:
                raise ValidationError(f"Discount {index}: amount must be > 0")
        normalized.append({"discount_type": discount_type, "value": value, "reason": raw.get("reason")})
    return normalized


def manual_discount_amount(discount_type: str, value, subtotal) -> Decimal:
    """Percent discounts are taken from the line subtotal; amounts are flat."""
    if discount_type == MANUAL_DISCOUNT_PERCENT:
        return to_money(to_money(subtotal) * to_percent(value) / HUNDRED)
    return to_money(value)


def _resolve_discount_code(code, discount_code_id, *, customer_id, product_ids, subtotal):
    if code is None and discount_code_id is not None:
        found = find_active(DiscountCode, discount_code_id, "Discount code")
        code = found.code
    if not code:
        return None, ZERO
    result = discount_service.validate_code(
        code,
        customer_id=customer_id,
        product_ids=product_ids,
        purchase_amount=subtotal,
    )
    if not result.is_valid:
        raise ValidationError(f"Discount code {code} is not valid: {result.message}")
    return result.discount_code, result.discount_amount


def _recheck_code(sale: Sale, subtotal) -> Decimal:
    """Re-run the full code validation against the sale as it stands now."""
    code = sale.discount_code.code
    result = discount_service.validate_code(
        code,
        customer_id=sale.customer_id,
        product_ids={detail.product_id for detail in sale.details},
        purchase_amount=subtotal,
    )
    if not result.is_valid:
        raise ValidationError(f"Discount code {code} is no longer valid: {result.message}")
    return result.discount_amount


def _reprice(sale: Sale) -> None:
    """Recompute every stored amount on a sale from its lines and discounts."""
    amounts = []
    for detail in sale.details:
        line = line_amounts_from_detail(detail)
        apply_line_amounts(detail, line)
        amounts.append(line)

    subtotal = sum((line.subtotal for line in amounts), ZERO)
    order_discounts = []
    for discount in sale.discounts:
        discount.amount_applied = manual_discount_amount(discount.discount_type, discount.value, subtotal)
        order_discounts.append(discount.amount_applied)

    code_amount = ZERO
    if sale.discount_code is not None:
        code_amount = _recheck_code(sale, subtotal)
    order_discounts.append(code_amount)

    totals = aggregate_totals(amounts, order_discounts)
    sale.subtotal = totals.subtotal
    sale.tax_amount = totals.tax_amount
    sale.discount_amount = totals.discount_amount
    sale.code_discount_amount = code_amount
    sale.total = totals.total
    sale.paid_amount = ZERO
    sale.pending_amount = totals.total


# =============================================================================
# LIFECYCLE
# =============================================================================

def create_sale(
    *,
    branch_id: int,
    details: list[dict],
    customer_id: int | None = None,
    guest_customer: dict | None = None,
    discount_code: str | None = None,
    discount_code_id: int | None = None,
    discounts: list[dict] | None = None,
    invoice_number: str | None = None,
    date: datetime | None = None,
    due_date: datetime | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Create a PENDING sale with its lines in one transaction.

    Exactly one of customer_id or guest_customer is required. A discount
    code is validated against the line subtotal but its usage is only
    recorded when the sale is confirmed.

    Raises:
        ValidationError: customer/guest rules, invalid lines or discounts
        NotFoundError: branch, customer or a product missing
        ConflictError: invoice number already used
    """
    def _op():
        if customer_id is not None and guest_customer:
            raise ValidationError("Provide either customer_id or guest_customer, not both")
        if customer_id is None and not guest_customer:
            raise ValidationError("A customer_id or guest_customer is required")

        find_active(Branch, branch_id, "Branch")
        if customer_id is not None:
            find_active(Customer, customer_id, "Customer")
        guest = {}
        if guest_customer:
            if not isinstance(guest_customer, dict) or not (guest_customer.get("name") or "").strip():
                raise ValidationError("guest_customer.name is required")
            guest = {f"guest_{key}": guest_customer.get(key) for key in GUEST_FIELDS}

        rows, amounts = build_detail_rows(SaleDetail, details, _load_product)
        manual = _normalize_manual_discounts(discounts)

        subtotal = sum((line.subtotal for line in amounts), ZERO)
        code, code_amount = _resolve_discount_code(
            discount_code,
            discount_code_id,
            customer_id=customer_id,
            product_ids=[row.product_id for row in rows],
            subtotal=subtotal,
        )

        discount_rows = []
        order_discounts = []
        for item in manual:
            applied = manual_discount_amount(item["discount_type"], item["value"], subtotal)
            discount_rows.append(SaleDiscount(amount_applied=applied, **item))
            order_discounts.append(applied)
        order_discounts.append(code_amount)
        totals = aggregate_totals(amounts, order_discounts)

        number = (invoice_number or "").strip()
        if number:
            ensure_unique(Sale, "invoice_number", number, label="Sale")
        else:
            number = next_invoice_number(current_app.config["SALE_INVOICE_PREFIX"])

        sale = Sale(
            invoice_number=number,
            customer_id=customer_id,
            branch_id=branch_id,
            discount_code_id=code.id if code is not None else None,
            date=date or utcnow(),
            due_date=due_date,
            status=SALE_STATUS_PENDING,
            payment_status=SETTLEMENT_PENDING,
            notes=notes,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            code_discount_amount=code_amount,
            total=totals.total,
            paid_amount=ZERO,
            pending_amount=totals.total,
            **guest,
        )
        sale.details = rows
        sale.discounts = discount_rows
        db.session.add(sale)
        db.session.commit()
        return sale

    sale = run_atomically(_op)
    notification_service.notify(notification_service.SALE_CREATED, sale.to_dict())
    notification_service.notify(
        notification_service.NEXT_INVOICE_NUMBER,
        {"kind": "sale", "next_number": next_sale_invoice_number()},
    )
    return sale


def loyalty_points_for(total) -> int:
    spend = Decimal(str(current_app.config.get("LOYALTY_SPEND_PER_POINT") or 0))
    if spend <= 0:
        return 0
    return int((to_money(total) / spend).to_integral_value(rounding=ROUND_FLOOR))


def confirm_sale(sale_id: int) -> Sale:
    """
    PENDING -> CONFIRMED as one atomic unit (stock, code usage, loyalty).

    Raises:
        ValidationError: sale not pending
        InsufficientStockError: a line exceeds the branch stock
        ValidationError: the discount code stopped being valid since creation
            (inactive, expired, usage limit reached, scope or minimum no longer met)
    """
    def _op():
        sale = _lock_sale(sale_id)
        _ensure_pending(sale, "confirmed")
        find_active(Branch, sale.branch_id, "Branch")

        for detail in sale.details:
            product = detail.product
            if not product.manage_stock:
                continue
            movement = build_movement(
                product=product,
                branch_id=sale.branch_id,
                quantity=detail.quantity,
                movement_type=MOVEMENT_OUT,
                unit_cost=product.cost,
                notes=f"Sale {sale.invoice_number}",
            )
            apply_movement(movement)

        if sale.discount_code_id is not None:
            code = lock_for_update(
                db.session.query(DiscountCode).filter_by(id=sale.discount_code_id)
            ).first()
            if code is None:
                raise NotFoundError(f"Discount code {sale.discount_code_id} not found")
            _recheck_code(sale, sale.subtotal)
            discount_service.apply_locked(code)

        points = 0
        if sale.customer_id is not None:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=sale.customer_id)).first()
            if customer is None or customer.is_deleted:
                raise NotFoundError(f"Customer {sale.customer_id} not found")
            points = loyalty_points_for(sale.total)
            customers_service.record_purchase(customer, to_money(sale.total), points)

        sale.loyalty_points_earned = points
        sale.status = SALE_STATUS_CONFIRMED
        sale.confirmed_at = utcnow()
        db.session.commit()

        current_app.logger.info("Sale %s confirmed at branch %s", sale.invoice_number, sale.branch_id)
        return sale

    sale = run_atomically(_op)
    notification_service.notify(notification_service.SALE_CONFIRMED, sale.to_dict())
    return sale


def cancel_sale(sale_id: int) -> Sale:
    def _op():
        sale = _lock_sale(sale_id)
        if sale.status == SALE_STATUS_CANCELLED:
            raise ConflictError(f"Sale {sale_id} is already cancelled")
        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        db.session.commit()
        return sale

    return run_atomically(_op)


def update_sale(sale_id: int, patch: dict) -> Sale:
    """Edit header fields of a pending sale."""
    def _op():
        sale = _lock_sale(sale_id)
        _ensure_pending(sale, "modified")
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
        if "date" in patch and patch["date"] is None:
            raise ValidationError("date cannot be null")
        for key, value in patch.items():
            setattr(sale, key, value)
        db.session.commit()
        return sale

    return run_atomically(_op)


def update_sale_line_quantity(sale_id: int, detail_id: int, quantity) -> Sale:
    """Change one line's quantity on a pending sale and reprice the whole order."""
    def _op():
        sale = _lock_sale(sale_id)
        _ensure_pending(sale, "modified")
        detail = next((d for d in sale.details if d.id == detail_id), None)
        if detail is None:
            raise NotFoundError(f"Sale line {detail_id} not found on sale {sale_id}")

        # validates the new quantity before anything is written
        line_amounts_from_detail(detail, quantity)
        detail.quantity = quantity
        _reprice(sale)
        db.session.commit()
        return sale

    return run_atomically(_op)


def add_sale_line(sale_id: int, line: dict) -> Sale:
    """Append one line to a pending sale and reprice the whole order."""
    def _op():
        sale = _lock_sale(sale_id)
        _ensure_pending(sale, "modified")
        rows, _ = build_detail_rows(SaleDetail, [line], _load_product)
        sale.details.extend(rows)
        _reprice(sale)
        db.session.commit()
        return sale

    return run_atomically(_op)


def remove_sale_line(sale_id: int, detail_id: int) -> Sale:
    """Drop one line from a pending sale; a sale keeps at least one line."""
    def _op():
        sale = _lock_sale(sale_id)
        _ensure_pending(sale, "modified")
        detail = next((d for d in sale.details if d.id == detail_id), None)
        if detail is None:
            raise NotFoundError(f"Sale line {detail_id} not found on sale {sale_id}")
        if len(sale.details) == 1:
            raise ValidationError("A sale must keep at least one line")

        sale.details.remove(detail)
        _reprice(sale)
        db.session.commit()
        return sale

    return run_atomically(_op)


def delete_sale(sale_id: int) -> Sale:
    def _op():
        sale = _lock_sale(sale_id)
        if has_payments(SALE_KIND, sale.id):
            raise ConflictError("Cannot delete a sale that has payments")
        if sale.status == SALE_STATUS_CONFIRMED:
            raise ConflictError("Cannot delete a confirmed sale; cancel it instead")
        sale.soft_delete()
        db.session.commit()
        return sale

    return run_atomically(_op)


def restore_sale(sale_id: int) -> Sale:
    def _op():
        sale = find_any(Sale, sale_id, "Sale")
        if not sale.is_deleted:
            raise ConflictError(f"Sale {sale_id} is not deleted")
        if sale.customer_id is not None:
            find_active(Customer, sale.customer_id, "Customer")
        sale.restore()
        db.session.commit()
        return sale

    return run_atomically(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    return find_active(Sale, sale_id, "Sale")


def list_sales(
    *,
    customer_id: int | None = None,
    branch_id: int | None = None,
    status: str | None = None,
) -> list[Sale]:
    query = Sale.active_query()
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    if status:
        if status not in SALE_STATUSES:
            raise ValidationError(f"Unknown sale status: {status}")
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.date.desc(), Sale.id.desc()).all()


def daily_sales(day: date_type | None = None, *, branch_id: int | None = None) -> dict:
    """Confirmed sales for one calendar day (UTC)."""
    day = day or utcnow().date()
    start, end = day_bounds(day)
    query = Sale.active_query().filter(
        Sale.status == SALE_STATUS_CONFIRMED,
        Sale.date >= start,
        Sale.date < end,
    )
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    sales = query.order_by(Sale.date, Sale.id).all()

    total = ZERO
    paid = ZERO
    for sale in sales:
        total += to_money(sale.total)
        paid += to_money(sale.paid_amount)
    return {
        "date": day.isoformat(),
        "count": len(sales),
        "total": total,
        "paid_amount": paid,
        "pending_amount": total - paid,
        "sales": sales,
    }


def sale_detail_stats(sale_id: int) -> dict:
    """Line-level breakdown of one sale."""
    sale = get_sale(sale_id)
    units = sum((detail.quantity for detail in sale.details), 0)
    line_discounts = ZERO
    for detail in sale.details:
        line_discounts += to_money(detail.discount_amount)
    return {
        "sale_id": sale.id,
        "line_count": len(sale.details),
        "distinct_products": len({detail.product_id for detail in sale.details}),
        "units": units,
        "subtotal": to_money(sale.subtotal),
        "line_discount_amount": line_discounts,
        "order_discount_amount": to_money(sale.discount_amount) - line_discounts,
        "tax_amount": to_money(sale.tax_amount),
        "total": to_money(sale.total),
    }


def product_sales_stats(product_id: int) -> dict:
    """Units and revenue a product has brought in across confirmed sales."""
    product = find_any(Product, product_id, "Product")
    details = (
        SaleDetail.query.join(Sale, SaleDetail.sale_id == Sale.id)
        .filter(
            SaleDetail.product_id == product.id,
            Sale.status == SALE_STATUS_CONFIRMED,
            Sale.deleted_at.is_(None),
        )
        .all()
    )
    revenue = ZERO
    for detail in details:
        revenue += to_money(detail.line_total)
    return {
        "product_id": product.id,
        "sales_count": len({detail.sale_id for detail in details}),
        "units_sold": sum((detail.quantity for detail in details), 0),
        "revenue": revenue,
    }


def next_sale_invoice_number() -> str:
    return peek_invoice_number(current_app.config["SALE_INVOICE_PREFIX"])
