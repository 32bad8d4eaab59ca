"""
Purchase orders: creation totals, numbering, header edits, cancel and receive.
"""

from decimal import Decimal

import pytest
from backoffice.models import InventoryMovement, Purchase, Supplier
from backoffice.services import inventory_service, payment_service, purchase_service
from backoffice.services.payment_service import PURCHASE_KIND
from backoffice.time_utils import utcnow
from backoffice.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def lines(make_product):
    first = make_product(sku="RICE", price="10.00", cost="8.00")
    second = make_product(sku="OIL", price="50.00", cost="40.00")
    return [
        {"product_id": first.id, "quantity": 3, "unit_price": "10", "discount": 10, "tax_percentage": 12},
        {"product_id": second.id, "quantity": 1, "unit_price": "50", "tax_percentage": 12},
    ]


def test_create_computes_totals_and_number(db_session, supplier, lines):
    purchase = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)

    assert purchase.invoice_number == f"ORD-{utcnow().year}-0001"
    assert purchase.status == "PENDING"
    assert purchase.subtotal == Decimal("80.00")
    assert purchase.discount_amount == Decimal("3.00")
    assert purchase.tax_amount == Decimal("9.24")
    assert purchase.total == Decimal("86.24")
    assert purchase.pending_amount == Decimal("86.24")
    assert [d.line_total for d in purchase.details] == [Decimal("30.24"), Decimal("56.00")]

    second = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    assert second.invoice_number == f"ORD-{utcnow().year}-0002"
    assert purchase_service.next_purchase_invoice_number() == f"ORD-{utcnow().year}-0003"


def test_explicit_invoice_number_must_be_unique(db_session, supplier, lines):
    purchase_service.create_purchase(supplier_id=supplier.id, details=lines, invoice_number="F-100")
    with pytest.raises(ConflictError):
        purchase_service.create_purchase(supplier_id=supplier.id, details=lines, invoice_number="F-100")
    assert Purchase.query.count() == 1


def test_create_requires_lines_and_known_references(db_session, supplier, lines):
    with pytest.raises(ValidationError):
        purchase_service.create_purchase(supplier_id=supplier.id, details=[])
    with pytest.raises(NotFoundError):
        purchase_service.create_purchase(supplier_id=999, details=lines)
    with pytest.raises(NotFoundError):
        purchase_service.create_purchase(supplier_id=supplier.id, details=[{"product_id": 999, "quantity": 1}])
    assert Purchase.query.count() == 0


def test_unit_price_defaults_to_product_price(db_session, supplier, product):
    purchase = purchase_service.create_purchase(
        supplier_id=supplier.id, details=[{"product_id": product.id, "quantity": 2}]
    )
    assert purchase.details[0].unit_price == Decimal("10.00")
    assert purchase.total == Decimal("20.00")


def test_receive_posts_in_movements(db_session, supplier, lines, branch):
    purchase = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)

    received = purchase_service.receive_purchase(purchase.id, branch.id)

    assert received.received_at is not None
    assert received.received_branch_id == branch.id
    # payment state is untouched by receiving
    assert received.status == "PENDING"
    assert inventory_service.get_stock(lines[0]["product_id"], branch.id) == Decimal("3")
    assert inventory_service.get_stock(lines[1]["product_id"], branch.id) == Decimal("1")

    movements = InventoryMovement.query.order_by(InventoryMovement.id).all()
    assert [(m.movement_type, m.status) for m in movements] == [("IN", "COMPLETED"), ("IN", "COMPLETED")]
    assert movements[0].unit_cost == Decimal("10.00")

    with pytest.raises(ConflictError):
        purchase_service.receive_purchase(purchase.id, branch.id)


def test_receive_skips_products_without_stock(db_session, supplier, make_product, branch):
    service_item = make_product(sku="INSTALL", manage_stock=False)
    purchase = purchase_service.create_purchase(
        supplier_id=supplier.id, details=[{"product_id": service_item.id, "quantity": 1}]
    )
    purchase_service.receive_purchase(purchase.id, branch.id)
    assert InventoryMovement.query.count() == 0


def test_cancelled_purchase_cannot_be_received(db_session, supplier, lines, branch):
    purchase = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    purchase_service.cancel_purchase(purchase.id)

    with pytest.raises(ValidationError):
        purchase_service.receive_purchase(purchase.id, branch.id)
    with pytest.raises(ConflictError):
        purchase_service.cancel_purchase(purchase.id)


def test_paid_purchase_cannot_be_cancelled_or_edited(db_session, supplier, lines, cash):
    purchase = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    payment_service.apply_payment(PURCHASE_KIND, purchase.id, amount="86.24", payment_method_id=cash.id)

    with pytest.raises(ValidationError):
        purchase_service.cancel_purchase(purchase.id)
    with pytest.raises(ValidationError):
        purchase_service.update_purchase(purchase.id, {"notes": "late"})


def test_update_header_fields(db_session, supplier, lines):
    purchase = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)

    updated = purchase_service.update_purchase(purchase.id, {"notes": "Deliver on Monday", "invoice_number": "F-7"})
    assert updated.notes == "Deliver on Monday"
    assert updated.invoice_number == "F-7"

    with pytest.raises(ValidationError):
        purchase_service.update_purchase(purchase.id, {"total": "1.00"})



def test_supplier_and_number_frozen_once_paid(db_session, supplier, lines, cash):
    other = Supplier(name="Other Supplies", nit="900100201", is_active=True)
    db_session.add(other)
    db_session.commit()
    purchase = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    number = purchase.invoice_number
    payment_service.apply_payment(PURCHASE_KIND, purchase.id, amount="10", payment_method_id=cash.id)
    assert purchase.status == "PARTIALLY_PAID"

    with pytest.raises(ValidationError, match="supplier_id"):
        purchase_service.update_purchase(purchase.id, {"supplier_id": other.id})
    with pytest.raises(ValidationError, match="invoice_number"):
        purchase_service.update_purchase(purchase.id, {"invoice_number": "F-9"})

    # unchanged values and other header fields are still accepted
    updated = purchase_service.update_purchase(
        purchase.id, {"supplier_id": supplier.id, "invoice_number": number, "notes": "Second delivery"}
    )
    assert updated.notes == "Second delivery"
    assert updated.supplier_id == supplier.id

def test_delete_blocked_by_payments(db_session, supplier, lines, cash):
    paid = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    payment_service.apply_payment(PURCHASE_KIND, paid.id, amount="1", payment_method_id=cash.id)
    with pytest.raises(ConflictError):
        purchase_service.delete_purchase(paid.id)

    unpaid = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    purchase_service.delete_purchase(unpaid.id)
    with pytest.raises(NotFoundError):
        purchase_service.get_purchase(unpaid.id)

    restored = purchase_service.restore_purchase(unpaid.id)
    assert not restored.is_deleted
    with pytest.raises(ConflictError):
        purchase_service.restore_purchase(unpaid.id)


def test_stats_and_listing(db_session, supplier, lines, cash):
    first = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    second = purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    purchase_service.create_purchase(supplier_id=supplier.id, details=lines)
    payment_service.apply_payment(PURCHASE_KIND, first.id, amount="50", payment_method_id=cash.id)
    purchase_service.cancel_purchase(second.id)

    stats = purchase_service.purchase_stats()
    assert stats["total"] == 3
    assert stats["pending"] == 1
    assert stats["partially_paid"] == 1
    assert stats["cancelled"] == 1
    assert stats["total_amount"] == Decimal("172.48")
    assert stats["paid_amount"] == Decimal("50.00")
    assert stats["pending_amount"] == Decimal("122.48")

    assert len(purchase_service.list_purchases(status="CANCELLED")) == 1
    assert len(purchase_service.list_purchases(supplier_id=supplier.id)) == 3
