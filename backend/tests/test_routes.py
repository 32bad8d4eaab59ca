"""
HTTP surface: status code mapping and the main workflows end to end.
"""

from decimal import Decimal

from backoffice.models import Inventory
from backoffice.time_utils import utcnow


def test_health_and_version(client, db_session):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "healthy"

    res = client.get("/version")
    assert res.status_code == 200
    assert res.get_json()["api_version"] == "1.0.0"


def test_master_data_crud_and_errors(client, db_session):
    res = client.post("/api/branches", json={"name": "Harbour"})
    assert res.status_code == 201
    branch_id = res.get_json()["id"]

    assert client.post("/api/branches", json={"name": "Harbour"}).status_code == 409
    assert client.post("/api/branches", json={}).status_code == 400
    assert client.post("/api/branches", json={"name": "X", "color": "red"}).status_code == 400
    assert client.get("/api/branches/999").status_code == 404
    assert client.get("/api/galaxies").status_code == 404

    assert client.delete(f"/api/branches/{branch_id}").status_code == 200
    assert client.get(f"/api/branches/{branch_id}").status_code == 404
    assert client.post(f"/api/branches/{branch_id}/restore").status_code == 200
    assert client.post(f"/api/branches/{branch_id}/restore").status_code == 409


def test_product_create_with_stock(client, db_session, category, unit, branch):
    res = client.post("/api/products", json={
        "name": "Tea",
        "sku": "TEA-1",
        "price": "4.00",
        "cost": "2.50",
        "category_id": category.id,
        "unit_id": unit.id,
        "initial_stock": [{"branch_id": branch.id, "stock": "12"}],
    })
    assert res.status_code == 201
    product_id = res.get_json()["id"]

    res = client.get(f"/api/inventory/stock?product_id={product_id}&branch_id={branch.id}")
    assert res.status_code == 200
    assert res.get_json()["stock"] == "12.000"

    res = client.post("/api/products", json={
        "name": "Cheap", "sku": "CHEAP", "price": "1.00", "cost": "2.00",
    })
    assert res.status_code == 400

    res = client.delete(f"/api/products/{product_id}")
    assert res.status_code == 409


def test_movement_workflow(client, db_session, product, branch):
    res = client.post("/api/inventory/movements", json={
        "product_id": product.id, "branch_id": branch.id, "quantity": "10", "movement_type": "IN",
    })
    assert res.status_code == 201
    movement_id = res.get_json()["id"]
    assert res.get_json()["status"] == "PENDING"

    assert client.post(f"/api/inventory/movements/{movement_id}/complete").status_code == 200
    assert client.post(f"/api/inventory/movements/{movement_id}/complete").status_code == 409

    res = client.post("/api/inventory/movements", json={
        "product_id": product.id, "branch_id": branch.id, "quantity": "15",
        "movement_type": "OUT", "complete": True,
    })
    assert res.status_code == 400
    assert "Insufficient stock" in res.get_json()["error"]

    res = client.post("/api/inventory/movements", json={
        "product_id": "one", "branch_id": branch.id, "quantity": "1", "movement_type": "IN",
    })
    assert res.status_code == 400


def test_transfer_workflow(client, db_session, product, branch, second_branch, stock):
    stock(product, branch, 20)

    res = client.post("/api/transfers", json={
        "product_id": product.id,
        "from_branch_id": branch.id,
        "to_branch_id": second_branch.id,
        "quantity": "5",
    })
    assert res.status_code == 201
    reference_id = res.get_json()["reference_id"]

    res = client.post(f"/api/transfers/{reference_id}/complete")
    assert res.status_code == 200
    assert client.post(f"/api/transfers/{reference_id}/complete").status_code == 409
    assert client.post("/api/transfers/unknown-ref/complete").status_code == 404


def test_purchase_receive_and_pay(client, db_session, supplier, product, branch, cash):
    res = client.post("/api/purchases", json={
        "supplier_id": supplier.id,
        "details": [{"product_id": product.id, "quantity": 4, "unit_price": "6.00", "tax_percentage": 12}],
    })
    assert res.status_code == 201
    body = res.get_json()
    purchase_id = body["id"]
    assert body["invoice_number"] == f"ORD-{utcnow().year}-0001"
    assert body["total"] == "26.88"

    assert client.post(f"/api/purchases/{purchase_id}/receive", json={"branch_id": branch.id}).status_code == 200
    assert client.post(f"/api/purchases/{purchase_id}/receive", json={"branch_id": branch.id}).status_code == 409

    res = client.post(f"/api/purchases/{purchase_id}/payments", json={
        "amount": "26.88", "payment_method_id": cash.id,
    })
    assert res.status_code == 201
    payment_id = res.get_json()["id"]

    res = client.get(f"/api/purchases/{purchase_id}")
    assert res.get_json()["status"] == "PAID"
    assert res.get_json()["pending_amount"] == "0.00"
    assert len(res.get_json()["payments"]) == 1

    res = client.post(f"/api/purchases/{purchase_id}/payments", json={
        "amount": "0.01", "payment_method_id": cash.id,
    })
    assert res.status_code == 400

    assert client.delete(f"/api/purchases/payments/{payment_id}").status_code == 400
    assert client.post(f"/api/purchases/payments/{payment_id}/cancel").status_code == 200
    assert client.get(f"/api/purchases/{purchase_id}").get_json()["status"] == "PENDING"


def test_sale_confirm_and_settle(client, db_session, product, branch, customer, stock, cash, make_code):
    stock(product, branch, 10)
    make_code()

    res = client.post("/api/sales", json={
        "branch_id": branch.id,
        "customer_id": customer.id,
        "discount_code": "SAVE10",
        "details": [{"product_id": product.id, "quantity": 3}],
    })
    assert res.status_code == 201
    sale = res.get_json()
    assert sale["total"] == "27.00"

    res = client.post(f"/api/sales/{sale['id']}/payments", json={"amount": "5", "payment_method_id": cash.id})
    assert res.status_code == 400

    res = client.post(f"/api/sales/{sale['id']}/confirm")
    assert res.status_code == 200
    assert res.get_json()["status"] == "CONFIRMED"
    assert client.post(f"/api/sales/{sale['id']}/confirm").status_code == 400

    res = client.post(f"/api/sales/{sale['id']}/payments", json={"amount": "27.00", "payment_method_id": cash.id})
    assert res.status_code == 201
    res = client.get(f"/api/sales/{sale['id']}")
    assert res.get_json()["payment_status"] == "PAID"

    res = client.get(f"/api/inventory/stock?product_id={product.id}&branch_id={branch.id}")
    assert res.get_json()["stock"] == "7.000"


def test_sale_rejects_customer_and_guest(client, db_session, product, branch, customer):
    res = client.post("/api/sales", json={
        "branch_id": branch.id,
        "customer_id": customer.id,
        "guest_customer": {"name": "Someone"},
        "details": [{"product_id": product.id, "quantity": 1}],
    })
    assert res.status_code == 400


def test_discount_code_validate_endpoint(client, db_session, make_code):
    make_code(min_purchase_amount=Decimal("100.00"), max_discount_amount=Decimal("20.00"), usage_limit=1)

    res = client.post("/api/discount-codes/validate", json={"code": "SAVE10", "purchase_amount": "250"})
    assert res.status_code == 200
    assert res.get_json() == {
        "is_valid": True,
        "discount_amount": "20.00",
        "message": None,
        "discount_code_id": res.get_json()["discount_code_id"],
    }

    assert client.post("/api/discount-codes/apply", json={"code": "SAVE10"}).status_code == 200
    res = client.post("/api/discount-codes/validate", json={"code": "SAVE10", "purchase_amount": "250"})
    assert res.get_json()["is_valid"] is False
    assert res.get_json()["message"] == "Usage limit reached"

    assert client.post("/api/discount-codes/validate", json={}).status_code == 400


def test_pending_transfer_delete_and_restore(client, db_session, product, branch, second_branch, stock):
    stock(product, branch, 5)
    res = client.post("/api/transfers", json={
        "product_id": product.id,
        "from_branch_id": branch.id,
        "to_branch_id": second_branch.id,
        "quantity": "2",
    })
    reference_id = res.get_json()["reference_id"]

    assert client.delete(f"/api/transfers/{reference_id}").status_code == 200
    assert client.post(f"/api/transfers/{reference_id}/complete").status_code == 404
    assert client.post(f"/api/transfers/{reference_id}/restore").status_code == 200
    assert client.post(f"/api/transfers/{reference_id}/restore").status_code == 404


def test_sale_line_endpoints(client, db_session, product, make_product, branch):
    extra = make_product(sku="CUP", price="3.00", cost="1.00")
    res = client.post("/api/sales", json={
        "branch_id": branch.id,
        "guest_customer": {"name": "Walk-in"},
        "details": [{"product_id": product.id, "quantity": 1}],
    })
    sale_id = res.get_json()["id"]

    res = client.post(f"/api/sales/{sale_id}/lines", json={"product_id": extra.id, "quantity": 2})
    assert res.status_code == 201
    body = res.get_json()
    assert body["total"] == "16.00"
    detail_id = body["details"][1]["id"]

    assert client.post(f"/api/sales/{sale_id}/lines", json=["not", "a", "line"]).status_code == 400
    assert client.get(f"/api/sales/{sale_id}/stats").get_json()["line_count"] == 2

    res = client.delete(f"/api/sales/{sale_id}/lines/{detail_id}")
    assert res.status_code == 200
    assert res.get_json()["total"] == "10.00"
    assert client.delete(f"/api/sales/{sale_id}/lines/{detail_id}").status_code == 404

    res = client.get(f"/api/sales/products/{product.id}/stats")
    assert res.status_code == 200
    assert res.get_json()["sales_count"] == 0
    assert client.get("/api/sales/products/999/stats").status_code == 404


def test_payment_reporting_endpoints(client, db_session, supplier, product, cash):
    purchase = client.post("/api/purchases", json={
        "supplier_id": supplier.id,
        "details": [{"product_id": product.id, "quantity": 2}],
    }).get_json()
    client.post(f"/api/purchases/{purchase['id']}/payments", json={"amount": "5", "payment_method_id": cash.id})

    res = client.get(f"/api/purchases/payments?counterparty_id={supplier.id}")
    assert res.get_json()["count"] == 1
    assert client.get("/api/purchases/payments?counterparty_id=999").get_json()["count"] == 0

    stats = client.get("/api/purchases/payments/stats").get_json()
    assert stats["total"] == 1
    assert stats["by_status"]["COMPLETED"]["count"] == 1

    daily = client.get("/api/purchases/payments/daily").get_json()
    assert daily["count"] == 1
    assert len(daily["payments"]) == 1
    assert client.get("/api/purchases/payments/daily?date=yesterday").status_code == 400


def test_supplier_search_and_stats_endpoints(client, db_session, supplier):
    res = client.get("/api/suppliers/search?q=acme")
    assert res.get_json()["count"] == 1
    assert client.get("/api/suppliers/stats").get_json()["total"] == 1
    assert client.get(f"/api/suppliers/{supplier.id}/stats").get_json()["purchase_count"] == 0
    assert client.get("/api/suppliers/999/stats").status_code == 404
    # generic CRUD still answers under the same prefix
    assert client.get(f"/api/suppliers/{supplier.id}").status_code == 200


def test_inventory_restore_endpoint(client, db_session, product, branch):
    inventory = Inventory(product_id=product.id, branch_id=branch.id, stock=Decimal("0"), min_stock=Decimal("0"))
    db_session.add(inventory)
    db_session.commit()

    assert client.post(f"/api/inventory/{inventory.id}/restore").status_code == 409
    assert client.delete(f"/api/inventory/{inventory.id}").status_code == 200
    assert client.post(f"/api/inventory/{inventory.id}/restore").status_code == 200
