"""
Master data: generic CRUD, uniqueness across soft-deleted rows, dependency guards.
"""

from decimal import Decimal

import pytest
from backoffice.services import master_data_service
from backoffice.validation import ConflictError, NotFoundError, ValidationError


def test_create_list_update(db_session):
    created = master_data_service.create_entity("units", {"name": "Kilogram", "abbreviation": "kg"})
    assert created.id is not None

    master_data_service.create_entity("units", {"name": "Litre", "abbreviation": "l"})
    assert [u.name for u in master_data_service.list_entities("units")] == ["Kilogram", "Litre"]
    assert [u.name for u in master_data_service.list_entities("units", search="lit")] == ["Litre"]

    updated = master_data_service.update_entity("units", created.id, {"description": "SI mass"})
    assert updated.description == "SI mass"


def test_unknown_entity(db_session):
    with pytest.raises(NotFoundError):
        master_data_service.list_entities("planets")


def test_unique_fields_include_soft_deleted_rows(db_session):
    branch = master_data_service.create_entity("branches", {"name": "Airport"})
    with pytest.raises(ConflictError):
        master_data_service.create_entity("branches", {"name": "Airport"})

    master_data_service.delete_entity("branches", branch.id)
    with pytest.raises(ConflictError):
        master_data_service.create_entity("branches", {"name": "Airport"})

    # renaming to its own name is fine
    master_data_service.restore_entity("branches", branch.id)
    master_data_service.update_entity("branches", branch.id, {"name": "Airport"})


def test_delete_restore_cycle(db_session, supplier):
    master_data_service.delete_entity("suppliers", supplier.id)
    with pytest.raises(NotFoundError):
        master_data_service.get_entity("suppliers", supplier.id)
    with pytest.raises(NotFoundError):
        master_data_service.update_entity("suppliers", supplier.id, {"phone": "555"})

    assert len(master_data_service.list_entities("suppliers", include_deleted=True)) == 1
    assert master_data_service.list_entities("suppliers") == []

    restored = master_data_service.restore_entity("suppliers", supplier.id)
    assert restored.deleted_at is None
    with pytest.raises(ConflictError):
        master_data_service.restore_entity("suppliers", supplier.id)


def test_guards_block_deletion_of_referenced_rows(db_session, product, branch, stock, category, unit):
    stock(product, branch, 1)

    with pytest.raises(ConflictError, match="inventory"):
        master_data_service.delete_entity("branches", branch.id)
    with pytest.raises(ConflictError, match="products"):
        master_data_service.delete_entity("categories", category.id)
    with pytest.raises(ConflictError, match="products"):
        master_data_service.delete_entity("units", unit.id)


def test_customer_category_guards(db_session, gold_category, customer, make_code):
    customer.category_id = gold_category.id
    db_session.commit()
    with pytest.raises(ConflictError, match="customers"):
        master_data_service.delete_entity("customer-categories", gold_category.id)

    customer.category_id = None
    db_session.commit()
    make_code(scope="CATEGORY", customer_category_id=gold_category.id)
    with pytest.raises(ConflictError, match="discount codes"):
        master_data_service.delete_entity("customer-categories", gold_category.id)


def test_customer_category_rules(db_session):
    with pytest.raises(ValidationError):
        master_data_service.create_entity(
            "customer-categories", {"name": "Silver", "discount_percentage": Decimal("101")}
        )
    with pytest.raises(ValidationError):
        master_data_service.create_entity(
            "customer-categories", {"name": "Silver", "min_purchase_amount": Decimal("-1")}
        )


def test_customer_category_reference_must_exist(db_session):
    with pytest.raises(NotFoundError):
        master_data_service.create_entity("customers", {"name": "Bob", "category_id": 999})
