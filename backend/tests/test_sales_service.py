"""
Sales: pricing with discounts, confirmation as one unit of work, lifecycle rules.
"""

from decimal import Decimal

import pytest
from backoffice.models import DiscountCode, InventoryMovement, Sale
from backoffice.services import discount_service, inventory_service, payment_service, sales_service
from backoffice.services.payment_service import SALE_KIND
from backoffice.time_utils import utcnow
from backoffice.validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError


def _sale(branch, product, quantity=2, **kwargs):
    kwargs.setdefault("guest_customer", None if kwargs.get("customer_id") else {"name": "Walk-in"})
    return sales_service.create_sale(
        branch_id=branch.id,
        details=[{"product_id": product.id, "quantity": quantity}],
        **kwargs,
    )


def test_create_guest_sale(db_session, branch, product):
    sale = _sale(branch, product, guest_customer={"name": "Luis", "nit": "CF"})

    assert sale.invoice_number == f"VEN-{utcnow().year}-0001"
    assert sale.status == "PENDING"
    assert sale.payment_status == "PENDING"
    assert sale.customer_id is None
    assert sale.to_dict()["guest_customer"]["name"] == "Luis"
    assert sale.total == Decimal("20.00")
    assert sale.pending_amount == Decimal("20.00")


def test_customer_xor_guest(db_session, branch, product, customer):
    with pytest.raises(ValidationError):
        sales_service.create_sale(
            branch_id=branch.id,
            customer_id=customer.id,
            guest_customer={"name": "Both"},
            details=[{"product_id": product.id, "quantity": 1}],
        )
    with pytest.raises(ValidationError):
        sales_service.create_sale(branch_id=branch.id, details=[{"product_id": product.id, "quantity": 1}])
    with pytest.raises(ValidationError):
        _sale(branch, product, guest_customer={"nit": "no name"})
    assert Sale.query.count() == 0


def test_manual_discounts(db_session, branch, make_product):
    item = make_product(sku="TV", price="100.00", cost="60.00")
    sale = _sale(
        branch,
        item,
        quantity=1,
        discounts=[
            {"discount_type": "percent", "value": "10", "reason": "Loyal client"},
            {"discount_type": "amount", "value": "5"},
        ],
    )
    assert [d.amount_applied for d in sale.discounts] == [Decimal("10.00"), Decimal("5.00")]
    assert sale.discount_amount == Decimal("15.00")
    assert sale.total == Decimal("85.00")

    with pytest.raises(ValidationError):
        _sale(branch, item, quantity=1, discounts=[{"discount_type": "percent", "value": "150"}])
    with pytest.raises(ValidationError):
        _sale(branch, item, quantity=1, discounts=[{"discount_type": "amount", "value": "500"}])


def test_discount_code_is_priced_at_creation_and_used_at_confirmation(db_session, branch, make_product, stock, make_code):
    item = make_product(sku="BIKE", price="250.00", cost="150.00")
    stock(item, branch, 5)
    make_code(min_purchase_amount=Decimal("100.00"), max_discount_amount=Decimal("20.00"), usage_limit=1)

    sale = _sale(branch, item, quantity=1, discount_code="SAVE10")
    assert sale.code_discount_amount == Decimal("20.00")
    assert sale.total == Decimal("230.00")
    assert DiscountCode.query.one().used_count == 0

    sales_service.confirm_sale(sale.id)
    assert DiscountCode.query.one().used_count == 1

    with pytest.raises(ValidationError, match="Usage limit"):
        _sale(branch, item, quantity=1, discount_code="SAVE10")


def test_invalid_code_rejects_sale(db_session, branch, product, make_code):
    make_code(min_purchase_amount=Decimal("100.00"))
    with pytest.raises(ValidationError):
        _sale(branch, product, quantity=1, discount_code="SAVE10")
    with pytest.raises(ValidationError):
        _sale(branch, product, quantity=1, discount_code="NOPE")


def test_confirm_posts_out_movements_and_loyalty(db_session, branch, product, customer, stock, gold_category):
    stock(product, branch, 20)
    sale = _sale(branch, product, quantity=12, customer_id=customer.id)
    assert sale.total == Decimal("120.00")

    confirmed = sales_service.confirm_sale(sale.id)

    assert confirmed.status == "CONFIRMED"
    assert confirmed.confirmed_at is not None
    assert inventory_service.get_stock(product.id, branch.id) == Decimal("8")
    out = InventoryMovement.query.filter_by(movement_type="OUT").one()
    assert out.status == "COMPLETED"
    assert out.unit_cost == Decimal("6.00")

    assert confirmed.loyalty_points_earned == 12
    assert customer.loyalty_points == 12
    assert customer.total_purchases == Decimal("120.00")
    assert customer.last_purchase_date is not None
    assert customer.category_id == gold_category.id


def test_confirm_is_all_or_nothing(db_session, branch, make_product, customer, stock, make_code):
    stocked = make_product(sku="IN-STOCK")
    scarce = make_product(sku="SCARCE")
    stock(stocked, branch, 10)
    stock(scarce, branch, 1)
    make_code()
    sale = sales_service.create_sale(
        branch_id=branch.id,
        customer_id=customer.id,
        discount_code="SAVE10",
        details=[
            {"product_id": stocked.id, "quantity": 2},
            {"product_id": scarce.id, "quantity": 3},
        ],
    )

    with pytest.raises(InsufficientStockError):
        sales_service.confirm_sale(sale.id)

    assert inventory_service.get_stock(stocked.id, branch.id) == Decimal("10")
    assert InventoryMovement.query.filter_by(movement_type="OUT").count() == 0
    assert DiscountCode.query.one().used_count == 0
    assert customer.loyalty_points == 0
    assert sales_service.get_sale(sale.id).status == "PENDING"


def test_only_pending_sales_confirm(db_session, branch, product, stock):
    stock(product, branch, 10)
    sale = _sale(branch, product)
    sales_service.confirm_sale(sale.id)

    with pytest.raises(ValidationError):
        sales_service.confirm_sale(sale.id)
    assert inventory_service.get_stock(product.id, branch.id) == Decimal("8")


def test_products_without_stock_are_skipped_on_confirm(db_session, branch, make_product):
    service_item = make_product(sku="WARRANTY", manage_stock=False)
    sale = _sale(branch, service_item, quantity=1)
    sales_service.confirm_sale(sale.id)
    assert InventoryMovement.query.count() == 0


def test_cancel(db_session, branch, product, stock):
    stock(product, branch, 10)
    sale = _sale(branch, product)
    sales_service.confirm_sale(sale.id)

    cancelled = sales_service.cancel_sale(sale.id)
    assert cancelled.status == "CANCELLED"
    assert cancelled.cancelled_at is not None
    # no automatic reversal of stock
    assert inventory_service.get_stock(product.id, branch.id) == Decimal("8")

    with pytest.raises(ConflictError):
        sales_service.cancel_sale(sale.id)


def test_update_line_quantity_reprices(db_session, branch, make_product):
    item = make_product(sku="PEN", price="4.00", cost="1.00")
    sale = _sale(branch, item, quantity=5, discounts=[{"discount_type": "percent", "value": "10"}])
    assert sale.total == Decimal("18.00")

    updated = sales_service.update_sale_line_quantity(sale.id, sale.details[0].id, 10)

    assert updated.details[0].quantity == Decimal("10")
    assert updated.subtotal == Decimal("40.00")
    assert updated.discounts[0].amount_applied == Decimal("4.00")
    assert updated.total == Decimal("36.00")
    assert updated.pending_amount == Decimal("36.00")

    with pytest.raises(ValidationError):
        sales_service.update_sale_line_quantity(sale.id, sale.details[0].id, 0)
    with pytest.raises(NotFoundError):
        sales_service.update_sale_line_quantity(sale.id, 999, 1)


def test_confirmed_sale_lines_are_immutable(db_session, branch, product, stock):
    stock(product, branch, 10)
    sale = _sale(branch, product)
    sales_service.confirm_sale(sale.id)

    with pytest.raises(ValidationError):
        sales_service.update_sale_line_quantity(sale.id, sale.details[0].id, 1)
    with pytest.raises(ValidationError):
        sales_service.update_sale(sale.id, {"notes": "changed"})


def test_delete_rules(db_session, branch, product, stock, cash):
    stock(product, branch, 10)
    draft = _sale(branch, product)
    sales_service.delete_sale(draft.id)
    with pytest.raises(NotFoundError):
        sales_service.get_sale(draft.id)
    sales_service.restore_sale(draft.id)

    paid = _sale(branch, product)
    sales_service.confirm_sale(paid.id)
    payment_service.apply_payment(SALE_KIND, paid.id, amount="1", payment_method_id=cash.id)
    with pytest.raises(ConflictError):
        sales_service.delete_sale(paid.id)


def test_daily_sales(db_session, branch, product, stock):
    stock(product, branch, 10)
    first = _sale(branch, product, quantity=1)
    _sale(branch, product, quantity=2)
    sales_service.confirm_sale(first.id)

    summary = sales_service.daily_sales()
    assert summary["count"] == 1
    assert summary["total"] == Decimal("10.00")
    assert summary["pending_amount"] == Decimal("10.00")


def test_line_edit_that_breaks_the_code_minimum_is_rejected(db_session, branch, make_product, make_code):
    item = make_product(sku="LAMP", price="50.00", cost="20.00")
    make_code(min_purchase_amount=Decimal("100.00"), max_discount_amount=Decimal("20.00"))
    sale = _sale(branch, item, quantity=3, discount_code="SAVE10")
    assert sale.code_discount_amount == Decimal("15.00")

    with pytest.raises(ValidationError, match="no longer valid"):
        sales_service.update_sale_line_quantity(sale.id, sale.details[0].id, 1)

    unchanged = sales_service.get_sale(sale.id)
    assert unchanged.details[0].quantity == Decimal("3")
    assert unchanged.code_discount_amount == Decimal("15.00")
    assert unchanged.total == Decimal("135.00")


def test_confirm_revalidates_the_code(db_session, branch, product, stock, make_code):
    stock(product, branch, 10)
    code = make_code()
    sale = _sale(branch, product)
    discount_service.toggle_discount_code(code.id)

    with pytest.raises(ValidationError, match="inactive"):
        sales_service.confirm_sale(sale.id)

    assert DiscountCode.query.one().used_count == 0
    assert sales_service.get_sale(sale.id).status == "PENDING"
    assert inventory_service.get_stock(product.id, branch.id) == Decimal("10")


def test_add_and_remove_lines_reprice(db_session, branch, make_product, product):
    pen = make_product(sku="PEN", price="4.00", cost="1.00")
    sale = _sale(branch, pen, quantity=5, discounts=[{"discount_type": "percent", "value": "10"}])

    grown = sales_service.add_sale_line(sale.id, {"product_id": product.id, "quantity": 2})
    assert len(grown.details) == 2
    assert grown.subtotal == Decimal("40.00")
    assert grown.discounts[0].amount_applied == Decimal("4.00")
    assert grown.total == Decimal("36.00")

    added_id = grown.details[1].id
    shrunk = sales_service.remove_sale_line(sale.id, added_id)
    assert [d.product_id for d in shrunk.details] == [pen.id]
    assert shrunk.total == Decimal("18.00")

    with pytest.raises(ValidationError, match="at least one line"):
        sales_service.remove_sale_line(sale.id, shrunk.details[0].id)
    with pytest.raises(NotFoundError):
        sales_service.remove_sale_line(sale.id, added_id)
    with pytest.raises(ValidationError):
        sales_service.add_sale_line(sale.id, {"product_id": product.id, "quantity": 0})
    assert len(sales_service.get_sale(sale.id).details) == 1


def test_lines_of_confirmed_sale_cannot_be_added_or_removed(db_session, branch, product, stock):
    stock(product, branch, 10)
    sale = _sale(branch, product)
    sales_service.confirm_sale(sale.id)

    with pytest.raises(ValidationError):
        sales_service.add_sale_line(sale.id, {"product_id": product.id, "quantity": 1})
    with pytest.raises(ValidationError):
        sales_service.remove_sale_line(sale.id, sale.details[0].id)


def test_sale_and_product_stats(db_session, branch, make_product, product, stock):
    other = make_product(sku="MUG", price="5.00", cost="2.00")
    stock(product, branch, 10)
    stock(other, branch, 10)
    sale = sales_service.create_sale(
        branch_id=branch.id,
        guest_customer={"name": "Walk-in"},
        details=[
            {"product_id": product.id, "quantity": 2, "discount": "10"},
            {"product_id": other.id, "quantity": 1},
        ],
        discounts=[{"discount_type": "amount", "value": "3"}],
    )

    detail = sales_service.sale_detail_stats(sale.id)
    assert detail["line_count"] == 2
    assert detail["distinct_products"] == 2
    assert detail["units"] == Decimal("3")
    assert detail["subtotal"] == Decimal("25.00")
    assert detail["line_discount_amount"] == Decimal("2.00")
    assert detail["order_discount_amount"] == Decimal("3.00")
    assert detail["total"] == Decimal("20.00")

    # pending sales do not count toward product revenue
    assert sales_service.product_sales_stats(product.id)["units_sold"] == 0

    sales_service.confirm_sale(sale.id)
    _sale(branch, product, quantity=1)
    stats = sales_service.product_sales_stats(product.id)
    assert stats["sales_count"] == 1
    assert stats["units_sold"] == Decimal("2")
    assert stats["revenue"] == Decimal("18.00")
