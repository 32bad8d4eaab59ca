"""
Payment ledger: settlement of purchases and sales through one set of operations.
"""

from decimal import Decimal

import pytest
from backoffice.models import PurchasePayment, Supplier
from backoffice.services import payment_service, purchase_service, sales_service
from backoffice.services.payment_service import PURCHASE_KIND, SALE_KIND, derive_status
from backoffice.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def order(db_session, supplier, make_product):
    """Purchase worth 86.24 (subtotal 80, discount 3, tax 9.24)."""
    first = make_product(sku="LINE-1", price="10.00", cost="8.00")
    second = make_product(sku="LINE-2", price="50.00", cost="40.00")
    return purchase_service.create_purchase(
        supplier_id=supplier.id,
        details=[
            {"product_id": first.id, "quantity": 3, "unit_price": "10", "discount": 10, "tax_percentage": 12},
            {"product_id": second.id, "quantity": 1, "unit_price": "50", "discount": 0, "tax_percentage": 12},
        ],
    )


def _pay(kind, order_id, amount, method, **kwargs):
    return payment_service.apply_payment(kind, order_id, amount=amount, payment_method_id=method.id, **kwargs)


@pytest.mark.parametrize(
    "total, paid, expected",
    [
        ("100", "0", "PENDING"),
        ("100", "0.01", "PARTIALLY_PAID"),
        ("100", "99.99", "PARTIALLY_PAID"),
        ("100", "100", "PAID"),
    ],
)
def test_derive_status(total, paid, expected):
    assert derive_status(Decimal(total), Decimal(paid)) == expected


def test_two_payments_settle_the_order(db_session, order, cash):
    assert order.total == Decimal("86.24")
    assert order.pending_amount == Decimal("86.24")

    _pay(PURCHASE_KIND, order.id, "50", cash)
    assert order.paid_amount == Decimal("50.00")
    assert order.pending_amount == Decimal("36.24")
    assert order.status == "PARTIALLY_PAID"

    _pay(PURCHASE_KIND, order.id, "36.24", cash)
    assert order.paid_amount == Decimal("86.24")
    assert order.pending_amount == Decimal("0.00")
    assert order.status == "PAID"

    with pytest.raises(ValidationError, match="exceeds pending balance"):
        _pay(PURCHASE_KIND, order.id, "0.01", cash)
    assert PurchasePayment.query.count() == 2


def test_non_positive_amount_rejected(db_session, order, cash):
    with pytest.raises(ValidationError):
        _pay(PURCHASE_KIND, order.id, "0", cash)
    with pytest.raises(ValidationError):
        _pay(PURCHASE_KIND, order.id, "-5", cash)


def test_bank_account_required_by_method(db_session, order, bank_transfer):
    with pytest.raises(ValidationError):
        _pay(PURCHASE_KIND, order.id, "10", bank_transfer)

    payment = _pay(PURCHASE_KIND, order.id, "10", bank_transfer, bank_account="0012-3344")
    assert payment.bank_account == "0012-3344"


def test_inactive_method_rejected(db_session, order, cash):
    cash.is_active = False
    db_session.commit()
    with pytest.raises(ValidationError):
        _pay(PURCHASE_KIND, order.id, "10", cash)


def test_cancelled_order_rejects_payments(db_session, order, cash):
    purchase_service.cancel_purchase(order.id)
    with pytest.raises(ValidationError):
        _pay(PURCHASE_KIND, order.id, "10", cash)


def test_cancelled_order_rejects_payment_edits(db_session, order, cash):
    payment = _pay(PURCHASE_KIND, order.id, "10", cash)
    purchase_service.cancel_purchase(order.id)

    with pytest.raises(ValidationError, match="cancelled"):
        payment_service.update_payment(PURCHASE_KIND, payment.id, amount="90")

    assert order.status == "CANCELLED"
    assert order.paid_amount == Decimal("10.00")
    assert payment_service.get_payment(PURCHASE_KIND, payment.id).amount == Decimal("10.00")


def test_update_reverts_old_amount_before_checking(db_session, order, cash):
    payment = _pay(PURCHASE_KIND, order.id, "80", cash)

    # 86.24 is fine because the original 80 is not counted twice
    payment_service.update_payment(PURCHASE_KIND, payment.id, amount="86.24")
    assert order.paid_amount == Decimal("86.24")
    assert order.pending_amount == Decimal("0.00")
    assert order.status == "PAID"

    with pytest.raises(ValidationError):
        payment_service.update_payment(PURCHASE_KIND, payment.id, amount="86.25")

    payment_service.update_payment(PURCHASE_KIND, payment.id, amount="20")
    assert order.paid_amount == Decimal("20.00")
    assert order.pending_amount == Decimal("66.24")
    assert order.status == "PARTIALLY_PAID"


def test_cancel_payment_restores_pending(db_session, order, cash):
    first = _pay(PURCHASE_KIND, order.id, "50", cash)
    _pay(PURCHASE_KIND, order.id, "10", cash)

    cancelled = payment_service.cancel_payment(PURCHASE_KIND, first.id)

    assert cancelled.status == "CANCELLED"
    assert order.paid_amount == Decimal("10.00")
    assert order.pending_amount == Decimal("76.24")
    assert order.status == "PARTIALLY_PAID"

    with pytest.raises(ConflictError):
        payment_service.cancel_payment(PURCHASE_KIND, first.id)
    with pytest.raises(ValidationError):
        payment_service.update_payment(PURCHASE_KIND, first.id, amount="5")


def test_cancelling_last_payment_returns_to_pending(db_session, order, cash):
    payment = _pay(PURCHASE_KIND, order.id, "86.24", cash)
    payment_service.cancel_payment(PURCHASE_KIND, payment.id)
    assert order.status == "PENDING"
    assert order.pending_amount == order.total


def test_payments_are_never_deleted(db_session, order, cash):
    payment = _pay(PURCHASE_KIND, order.id, "10", cash)
    with pytest.raises(ValidationError):
        payment_service.delete_payment(PURCHASE_KIND, payment.id)
    with pytest.raises(NotFoundError):
        payment_service.delete_payment(PURCHASE_KIND, 999)
    assert PurchasePayment.query.count() == 1


def test_pending_payment_counts_once_completed(db_session, order, cash):
    payment = _pay(PURCHASE_KIND, order.id, "30", cash, status="PENDING")
    assert order.paid_amount == Decimal("0.00")
    assert order.status == "PENDING"

    payment_service.complete_payment(PURCHASE_KIND, payment.id)
    assert order.paid_amount == Decimal("30.00")
    assert order.status == "PARTIALLY_PAID"

    with pytest.raises(ConflictError):
        payment_service.complete_payment(PURCHASE_KIND, payment.id)


def test_list_payments_filters(db_session, order, cash, bank_transfer):
    _pay(PURCHASE_KIND, order.id, "10", cash)
    _pay(PURCHASE_KIND, order.id, "5", bank_transfer, bank_account="ACC-1", status="PENDING")

    assert len(payment_service.list_payments(PURCHASE_KIND, order_id=order.id)) == 2
    assert len(payment_service.list_payments(PURCHASE_KIND, payment_method_id=cash.id)) == 1
    assert len(payment_service.list_payments(PURCHASE_KIND, status="PENDING")) == 1
    with pytest.raises(ValidationError):
        payment_service.list_payments(PURCHASE_KIND, status="LOST")


def test_sale_payments_require_confirmation(db_session, branch, product, customer, stock, cash):
    stock(product, branch, 10)
    sale = sales_service.create_sale(
        branch_id=branch.id,
        customer_id=customer.id,
        details=[{"product_id": product.id, "quantity": 2}],
    )
    assert sale.total == Decimal("20.00")

    with pytest.raises(ValidationError):
        _pay(SALE_KIND, sale.id, "5", cash)

    sales_service.confirm_sale(sale.id)
    _pay(SALE_KIND, sale.id, "5", cash)

    assert sale.status == "CONFIRMED"
    assert sale.payment_status == "PARTIALLY_PAID"
    assert sale.paid_amount == Decimal("5.00")
    assert sale.pending_amount == Decimal("15.00")

    _pay(SALE_KIND, sale.id, "15", cash)
    assert sale.payment_status == "PAID"
    # lifecycle status is separate from settlement
    assert sale.status == "CONFIRMED"


def test_payments_by_counterparty(db_session, order, supplier, cash):
    other = Supplier(name="Other Supplies", nit="900100201", is_active=True)
    db_session.add(other)
    db_session.commit()
    _pay(PURCHASE_KIND, order.id, "10", cash)

    assert len(payment_service.list_payments(PURCHASE_KIND, counterparty_id=supplier.id)) == 1
    assert payment_service.list_payments(PURCHASE_KIND, counterparty_id=other.id) == []


def test_payment_stats_and_daily_payments(db_session, order, cash, bank_transfer):
    _pay(PURCHASE_KIND, order.id, "10", cash)
    _pay(PURCHASE_KIND, order.id, "5", bank_transfer, bank_account="ACC-1", status="PENDING")
    cancelled = _pay(PURCHASE_KIND, order.id, "2", cash)
    payment_service.cancel_payment(PURCHASE_KIND, cancelled.id)

    stats = payment_service.payment_stats(PURCHASE_KIND)
    assert stats["total"] == 3
    assert stats["by_status"]["COMPLETED"] == {"count": 1, "amount": Decimal("10.00")}
    assert stats["by_status"]["PENDING"]["amount"] == Decimal("5.00")
    assert stats["by_status"]["CANCELLED"]["count"] == 1
    assert stats["completed_amount"] == Decimal("10.00")
    assert payment_service.payment_stats(SALE_KIND)["total"] == 0

    daily = payment_service.daily_payments(PURCHASE_KIND)
    assert daily["count"] == 3
    assert daily["completed_amount"] == Decimal("10.00")
