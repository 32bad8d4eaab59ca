"""
Pytest fixtures for back-office tests.

Provides an in-memory database shared for the session, a per-test clean
slate, a test client, and small factories for the master data every
ledger/order test needs.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Branch,
    Category,
    Customer,
    CustomerCategory,
    DiscountCode,
    PaymentMethod,
    Product,
    Supplier,
    Unit,
)
from backoffice.services import inventory_service
from backoffice.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    b = Branch(name="Central", address="Main street 1", is_active=True)
    db_session.add(b)
    db_session.commit()
    return b


@pytest.fixture(scope='function')
def second_branch(db_session):
    b = Branch(name="North", address="North avenue 9", is_active=True)
    db_session.add(b)
    db_session.commit()
    return b


@pytest.fixture(scope='function')
def unit(db_session):
    u = Unit(name="Unit", abbreviation="u")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture(scope='function')
def category(db_session):
    c = Category(name="Groceries", is_active=True)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_product(db_session, category, unit):
    """Factory: make_product(sku="P-1", price="10.00", cost="6.00", manage_stock=True)."""
    counter = {"n": 0}

    def _make(sku=None, price="10.00", cost="6.00", manage_stock=True, name=None):
        counter["n"] += 1
        p = Product(
            name=name or f"Product {counter['n']}",
            sku=sku or f"SKU-{counter['n']:03d}",
            price=Decimal(price),
            cost=Decimal(cost),
            category_id=category.id,
            unit_id=unit.id,
            manage_stock=manage_stock,
            is_active=True,
        )
        db_session.add(p)
        db_session.commit()
        return p

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(sku="P-001", price="10.00", cost="6.00")


@pytest.fixture(scope='function')
def stock(db_session):
    """Factory: stock(product, branch, qty) posts a completed IN movement."""
    def _stock(product, branch, quantity):
        return inventory_service.create_movement(
            product_id=product.id,
            branch_id=branch.id,
            quantity=quantity,
            movement_type="IN",
            complete=True,
        )

    return _stock


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Acme Supplies", nit="900100200", is_active=True)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def cash(db_session):
    m = PaymentMethod(name="Cash", requires_bank_account=False, is_active=True)
    db_session.add(m)
    db_session.commit()
    return m


@pytest.fixture(scope='function')
def bank_transfer(db_session):
    m = PaymentMethod(name="Bank transfer", requires_bank_account=True, is_active=True)
    db_session.add(m)
    db_session.commit()
    return m


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Ana Perez", nit="CF-1001", email="ana@example.com")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def gold_category(db_session):
    c = CustomerCategory(name="Gold", min_purchase_amount=Decimal("100.00"), discount_percentage=Decimal("5.00"))
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_code(db_session):
    """Factory for discount codes valid from yesterday until next week."""
    def _make(code="SAVE10", **overrides):
        now = utcnow()
        values = {
            "code": code,
            "discount_type": "PERCENTAGE",
            "value": Decimal("10.00"),
            "scope": "GLOBAL",
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=7),
            "is_active": True,
            "used_count": 0,
        }
        values.update(overrides)
        dc = DiscountCode(**values)
        db_session.add(dc)
        db_session.commit()
        return dc

    return _make
