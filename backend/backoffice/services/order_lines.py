# Overview: Pure line and order total computation shared by purchases and sales.

"""
Order line engine.

No database access and no side effects: given line inputs it returns the
computed amounts, and aggregate_totals folds lines plus order-level
discounts into order totals. Currency is rounded to 2 places and
quantities to 3 (ROUND_HALF_UP) at each stored value, so
line_total == subtotal - discount_amount + tax_amount holds exactly.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..money import HUNDRED, ZERO, to_money, to_percent, to_quantity
from ..validation import ValidationError


@dataclass(frozen=True)
class LineAmounts:
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_percentage: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    line_discount_amount: Decimal
    order_discount_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


def validate_line_inputs(quantity: Decimal, unit_price: Decimal, discount: Decimal, tax_percentage: Decimal) -> None:
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if unit_price < 0:
        raise ValidationError("unit_price must be >= 0")
    if discount < 0 or discount > HUNDRED:
        raise ValidationError("discount must be between 0 and 100")
    if tax_percentage < 0 or tax_percentage > HUNDRED:
        raise ValidationError("tax_percentage must be between 0 and 100")


def compute_line(quantity, unit_price, discount=0, tax_percentage=0, discount_amount=None) -> LineAmounts:
    """
    subtotal = quantity * unit_price
    discount_amount = subtotal * discount / 100, unless given explicitly
    tax_amount = (subtotal - discount_amount) * tax_percentage / 100
    line_total = subtotal - discount_amount + tax_amount
    """
    qty = to_quantity(quantity, "quantity")
    price = to_money(unit_price, "unit_price")
    disc_pct = to_percent(discount, "discount")
    tax_pct = to_percent(tax_percentage, "tax_percentage")
    validate_line_inputs(qty, price, disc_pct, tax_pct)

    subtotal = to_money(qty * price)
    if discount_amount is None:
        discount_amount = to_money(subtotal * disc_pct / HUNDRED)
    else:
        discount_amount = to_money(discount_amount, "discount_amount")
        if disc_pct:
            raise ValidationError("Give either discount or discount_amount on a line, not both")
        if discount_amount < 0 or discount_amount > subtotal:
            raise ValidationError("discount_amount must be between 0 and the line subtotal")
    after_discount = subtotal - discount_amount
    tax_amount = to_money(after_discount * tax_pct / HUNDRED)
    line_total = after_discount + tax_amount

    return LineAmounts(
        quantity=qty,
        unit_price=price,
        discount=disc_pct,
        tax_percentage=tax_pct,
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        line_total=line_total,
    )


def gross_subtotal(lines: Iterable[dict]) -> Decimal:
    """Sum of quantity * unit_price before any discount or tax."""
    total = ZERO
    for line in lines:
        total += to_money(to_quantity(line.get("quantity")) * to_money(line.get("unit_price"), "unit_price"))
    return total


def aggregate_totals(lines: Iterable[LineAmounts], order_discounts: Iterable[Decimal] = ()) -> OrderTotals:
    """
    Fold line amounts into order totals.

    order_discounts are already-computed order-level amounts (manual
    discounts, discount-code amount) added on top of the line discounts.
    """
    subtotal = ZERO
    line_discounts = ZERO
    tax_amount = ZERO
    for line in lines:
        subtotal += line.subtotal
        line_discounts += line.discount_amount
        tax_amount += line.tax_amount

    order_discount = ZERO
    for amount in order_discounts:
        order_discount += to_money(amount)

    discount_amount = line_discounts + order_discount
    total = subtotal - discount_amount + tax_amount
    if total < 0:
        raise ValidationError("Discounts exceed the order amount")

    return OrderTotals(
        subtotal=subtotal,
        line_discount_amount=line_discounts,
        order_discount_amount=order_discount,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=total,
    )


def apply_line_amounts(detail, amounts: LineAmounts) -> None:
    """Copy computed amounts onto a PurchaseDetail / SaleDetail row."""
    detail.quantity = amounts.quantity
    detail.unit_price = amounts.unit_price
    detail.discount = amounts.discount
    detail.discount_amount = amounts.discount_amount
    detail.tax_percentage = amounts.tax_percentage
    detail.tax_amount = amounts.tax_amount
    detail.line_total = amounts.line_total


def fixed_discount_of(detail):
    """A stored line with no discount percentage but a discount amount carries a fixed override."""
    if not detail.discount and detail.discount_amount:
        return detail.discount_amount
    return None


def line_amounts_from_detail(detail, quantity=None) -> LineAmounts:
    """Recompute a stored detail row through compute_line, optionally at a new quantity."""
    return compute_line(
        detail.quantity if quantity is None else quantity,
        detail.unit_price,
        detail.discount,
        detail.tax_percentage,
        discount_amount=fixed_discount_of(detail),
    )


def build_detail_rows(detail_model, lines, load_product) -> tuple[list, list[LineAmounts]]:
    """
    Turn raw line payloads into detail rows.

    lines: iterable of {"product_id", "quantity", "unit_price", "discount"?,
    "discount_amount"?, "tax_percentage"?}. load_product(product_id) must return the product or
    raise; unit_price defaults to the product's price when omitted.
    """
    rows = []
    amounts = []
    for index, line in enumerate(lines or [], start=1):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {index} must be an object")
        product = load_product(line.get("product_id"))
        unit_price = line.get("unit_price")
        if unit_price is None:
            unit_price = product.price
        line_amounts = compute_line(
            line.get("quantity"),
            unit_price,
            line.get("discount") or 0,
            line.get("tax_percentage") or 0,
            discount_amount=line.get("discount_amount"),
        )
        row = detail_model(product_id=product.id)
        apply_line_amounts(row, line_amounts)
        rows.append(row)
        amounts.append(line_amounts)
    if not rows:
        raise ValidationError("An order must have at least one line")
    return rows, amounts
