"""
Order events are broadcast after commit and never break the operation that emits them.
"""

import pytest
from backoffice.models import Sale
from backoffice.services import notification_service, purchase_service, sales_service


@pytest.fixture
def received():
    events = []
    handlers = []

    def _listen(event_name):
        def handler(sender, payload):
            events.append((event_name, payload))

        notification_service.signal_for(event_name).connect(handler)
        handlers.append((event_name, handler))

    yield events, _listen

    for event_name, handler in handlers:
        notification_service.signal_for(event_name).disconnect(handler)


def test_purchase_created_and_next_number(db_session, supplier, product, received):
    events, listen = received
    listen(notification_service.PURCHASE_CREATED)
    listen(notification_service.NEXT_INVOICE_NUMBER)

    purchase = purchase_service.create_purchase(
        supplier_id=supplier.id, details=[{"product_id": product.id, "quantity": 1}]
    )

    names = [name for name, _ in events]
    assert names == [notification_service.PURCHASE_CREATED, notification_service.NEXT_INVOICE_NUMBER]
    assert events[0][1]["invoice_number"] == purchase.invoice_number
    assert events[1][1]["kind"] == "purchase"
    assert events[1][1]["next_number"].endswith("-0002")


def test_sale_confirmed_event(db_session, branch, product, stock, received):
    events, listen = received
    listen(notification_service.SALE_CONFIRMED)
    stock(product, branch, 5)

    sale = sales_service.create_sale(
        branch_id=branch.id,
        guest_customer={"name": "Walk-in"},
        details=[{"product_id": product.id, "quantity": 1}],
    )
    assert events == []

    sales_service.confirm_sale(sale.id)
    assert [payload["status"] for _, payload in events] == ["CONFIRMED"]


def test_failing_receiver_does_not_break_the_sale(db_session, branch, product, caplog):
    def broken(sender, payload):
        raise RuntimeError("socket closed")

    signal = notification_service.signal_for(notification_service.SALE_CREATED)
    signal.connect(broken)
    try:
        sale = sales_service.create_sale(
            branch_id=branch.id,
            guest_customer={"name": "Walk-in"},
            details=[{"product_id": product.id, "quantity": 1}],
        )
    finally:
        signal.disconnect(broken)

    assert Sale.query.count() == 1
    assert sale.id is not None
    assert "Notification receiver failed" in caplog.text


def test_disabled_notifications(app, db_session, supplier, product, received):
    events, listen = received
    listen(notification_service.PURCHASE_CREATED)
    app.config["NOTIFICATIONS_ENABLED"] = False
    try:
        purchase_service.create_purchase(supplier_id=supplier.id, details=[{"product_id": product.id, "quantity": 1}])
    finally:
        app.config["NOTIFICATIONS_ENABLED"] = True
    assert events == []
