"""
Suppliers: search and purchase statistics.
"""

from decimal import Decimal

import pytest
from backoffice.models import Supplier
from backoffice.services import payment_service, purchase_service, suppliers_service
from backoffice.services.payment_service import PURCHASE_KIND
from backoffice.validation import NotFoundError


@pytest.fixture
def idle_supplier(db_session):
    s = Supplier(name="Bodega Norte", nit="800555001", contact_name="Marta Ruiz", is_active=False)
    db_session.add(s)
    db_session.commit()
    return s


def test_search_by_name_nit_or_contact(db_session, supplier, idle_supplier):
    assert suppliers_service.search_suppliers("acme") == [supplier]
    assert suppliers_service.search_suppliers(" 800555 ") == [idle_supplier]
    assert suppliers_service.search_suppliers("ruiz") == [idle_supplier]
    assert suppliers_service.search_suppliers(None) == [supplier, idle_supplier]
    assert suppliers_service.search_suppliers("nobody") == []


def test_supplier_stats(db_session, supplier, idle_supplier, product, cash):
    first = purchase_service.create_purchase(
        supplier_id=supplier.id, details=[{"product_id": product.id, "quantity": 5}]
    )
    payment_service.apply_payment(PURCHASE_KIND, first.id, amount="20", payment_method_id=cash.id)
    dropped = purchase_service.create_purchase(
        supplier_id=supplier.id, details=[{"product_id": product.id, "quantity": 1}]
    )
    purchase_service.cancel_purchase(dropped.id)

    stats = suppliers_service.supplier_stats()
    assert stats["total"] == 2
    assert stats["active"] == 1
    assert stats["inactive"] == 1
    assert stats["purchase_count"] == 1
    assert stats["total_purchased"] == Decimal("50.00")
    assert stats["total_pending"] == Decimal("30.00")

    own = suppliers_service.supplier_purchase_stats(supplier.id)
    assert own["purchase_count"] == 1
    assert own["total_pending"] == Decimal("30.00")
    assert suppliers_service.supplier_purchase_stats(idle_supplier.id)["purchase_count"] == 0
    with pytest.raises(NotFoundError):
        suppliers_service.supplier_purchase_stats(999)
