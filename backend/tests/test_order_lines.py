"""
Order line engine: line amounts and order aggregation (no database).
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from backoffice.services.order_lines import aggregate_totals, compute_line, gross_subtotal, line_amounts_from_detail
from backoffice.validation import ValidationError


def test_compute_line_with_discount_and_tax():
    line = compute_line(3, "10.00", 10, 12)

    assert line.subtotal == Decimal("30.00")
    assert line.discount_amount == Decimal("3.00")
    assert line.tax_amount == Decimal("3.24")
    assert line.line_total == Decimal("30.24")


def test_order_totals_for_two_lines():
    lines = [compute_line(3, "10", 10, 12), compute_line(1, "50", 0, 12)]
    assert lines[1].line_total == Decimal("56.00")

    totals = aggregate_totals(lines)

    assert totals.subtotal == Decimal("80.00")
    assert totals.discount_amount == Decimal("3.00")
    assert totals.tax_amount == Decimal("9.24")
    assert totals.total == Decimal("86.24")


def test_line_total_identity_holds_with_rounding():
    line = compute_line("2.333", "1.99", "7.5", "19")
    assert line.line_total == line.subtotal - line.discount_amount + line.tax_amount
    assert line.subtotal == Decimal("4.64")


def test_order_level_discounts_are_additive():
    lines = [compute_line(2, "50", 0, 0)]
    totals = aggregate_totals(lines, [Decimal("10.00"), Decimal("5.50")])

    assert totals.line_discount_amount == Decimal("0.00")
    assert totals.order_discount_amount == Decimal("15.50")
    assert totals.total == Decimal("84.50")


def test_discounts_larger_than_order_are_rejected():
    with pytest.raises(ValidationError):
        aggregate_totals([compute_line(1, "5", 0, 0)], [Decimal("6")])


@pytest.mark.parametrize(
    "quantity, price, discount, tax",
    [
        (0, "10", 0, 0),
        (-1, "10", 0, 0),
        (1, "-0.01", 0, 0),
        (1, "10", 101, 0),
        (1, "10", 0, -1),
    ],
)
def test_invalid_line_inputs(quantity, price, discount, tax):
    with pytest.raises(ValidationError):
        compute_line(quantity, price, discount, tax)


def test_float_inputs_do_not_leak_binary_error():
    line = compute_line(0.1, 0.2)
    assert line.subtotal == Decimal("0.02")


def test_gross_subtotal():
    assert gross_subtotal([
        {"quantity": 2, "unit_price": "1.25"},
        {"quantity": "0.5", "unit_price": "3"},
    ]) == Decimal("4.00")


def test_explicit_line_discount_amount():
    line = compute_line(4, "2.50", tax_percentage=10, discount_amount="1.50")

    assert line.subtotal == Decimal("10.00")
    assert line.discount_amount == Decimal("1.50")
    assert line.tax_amount == Decimal("0.85")
    assert line.line_total == Decimal("9.35")

    with pytest.raises(ValidationError):
        compute_line(4, "2.50", discount=5, discount_amount="1.50")
    with pytest.raises(ValidationError):
        compute_line(4, "2.50", discount_amount="10.01")


def test_stored_fixed_discount_survives_requantity():
    detail = SimpleNamespace(
        quantity=Decimal("4"),
        unit_price=Decimal("2.50"),
        discount=Decimal("0"),
        discount_amount=Decimal("1.50"),
        tax_percentage=Decimal("0"),
    )

    assert line_amounts_from_detail(detail, 8).line_total == Decimal("18.50")
    with pytest.raises(ValidationError):
        line_amounts_from_detail(detail, "0.5")
