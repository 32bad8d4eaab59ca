# Overview: Generic master-data CRUD with uniqueness checks, soft delete and restore.

"""
Master data (categories, units, branches, suppliers, payment methods,
customer categories, customers).

Every entity gets the same operations: create, list active, get, update,
soft delete and restore. Per-entity rules are declared in an EntityDefinition:
unique fields (checked against every row, soft-deleted included, so a
restore never collides), foreign keys that must point at active rows,
and dependency checks that block deletion.

Products have extra rules and live in products_service; customers add
loyalty/purchase-stat operations in customers_service.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import func, or_

from ..extensions import db
from ..models import (
    Branch,
    Category,
    Customer,
    CustomerCategory,
    DiscountCode,
    Inventory,
    InventoryMovement,
    PaymentMethod,
    Product,
    Purchase,
    PurchasePayment,
    Sale,
    SalePayment,
    Supplier,
    Unit,
)
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError
from .concurrency import run_atomically


@dataclass(frozen=True)
class EntityDefinition:
    model: type
    label: str
    policy: ModelValidationPolicy
    unique_fields: tuple[str, ...] = ()
    foreign_keys: dict[str, type] = field(default_factory=dict)
    # Each check returns a message when deletion must be blocked
    delete_guards: tuple[Callable[[int], str | None], ...] = ()
    order_by: str = "name"


def find_active(model, entity_id, label: str | None = None):
    """Load a non-deleted row or raise NotFoundError."""
    label = label or model.__name__
    obj = None
    if entity_id is not None:
        obj = db.session.get(model, entity_id)
    if obj is None or obj.is_deleted:
        raise NotFoundError(f"{label} {entity_id} not found")
    return obj


def find_any(model, entity_id, label: str | None = None):
    """Load a row whether or not it is soft-deleted."""
    label = label or model.__name__
    obj = db.session.get(model, entity_id) if entity_id is not None else None
    if obj is None:
        raise NotFoundError(f"{label} {entity_id} not found")
    return obj


def ensure_unique(model, field_name: str, value, *, exclude_id: int | None = None, label: str | None = None) -> None:
    if value is None or value == "":
        return
    query = model.query.filter(getattr(model, field_name) == value)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if db.session.query(query.exists()).scalar():
        raise ConflictError(f"{label or model.__name__} with {field_name} '{value}' already exists")


def _count(query) -> int:
    return query.with_entities(func.count()).scalar() or 0


# =============================================================================
# DELETE GUARDS
# =============================================================================

def _branch_guard(branch_id: int) -> str | None:
    if _count(Inventory.query.filter(Inventory.branch_id == branch_id)):
        return "Branch has inventory records"
    movements = InventoryMovement.query.filter(
        or_(
            InventoryMovement.branch_id == branch_id,
            InventoryMovement.source_branch_id == branch_id,
            InventoryMovement.target_branch_id == branch_id,
        )
    )
    if _count(movements):
        return "Branch has inventory movements or transfers"
    if _count(Sale.query.filter(Sale.branch_id == branch_id)):
        return "Branch has sales"
    return None


def _category_guard(category_id: int) -> str | None:
    if _count(Product.active_query().filter(Product.category_id == category_id)):
        return "Category has products"
    return None


def _unit_guard(unit_id: int) -> str | None:
    if _count(Product.active_query().filter(Product.unit_id == unit_id)):
        return "Unit is used by products"
    return None


def _supplier_guard(supplier_id: int) -> str | None:
    if _count(Purchase.active_query().filter(Purchase.supplier_id == supplier_id)):
        return "Supplier has purchases"
    return None


def _payment_method_guard(method_id: int) -> str | None:
    if _count(PurchasePayment.query.filter(PurchasePayment.payment_method_id == method_id)):
        return "Payment method is used by purchase payments"
    if _count(SalePayment.query.filter(SalePayment.payment_method_id == method_id)):
        return "Payment method is used by sale payments"
    return None


def _customer_category_guard(category_id: int) -> str | None:
    if _count(Customer.active_query().filter(Customer.category_id == category_id)):
        return "Customer category has customers"
    if _count(DiscountCode.active_query().filter(DiscountCode.customer_category_id == category_id)):
        return "Customer category is bound to discount codes"
    return None


def _customer_guard(customer_id: int) -> str | None:
    if _count(Sale.active_query().filter(Sale.customer_id == customer_id)):
        return "Customer has sales"
    return None


ENTITIES: dict[str, EntityDefinition] = {
    "categories": EntityDefinition(
        model=Category,
        label="Category",
        policy=ModelValidationPolicy(
            writable_fields={"name", "description", "is_active"},
            required_on_create={"name"},
        ),
        unique_fields=("name",),
        delete_guards=(_category_guard,),
    ),
    "units": EntityDefinition(
        model=Unit,
        label="Unit",
        policy=ModelValidationPolicy(
            writable_fields={"name", "abbreviation", "description"},
            required_on_create={"name", "abbreviation"},
        ),
        unique_fields=("name", "abbreviation"),
        delete_guards=(_unit_guard,),
    ),
    "branches": EntityDefinition(
        model=Branch,
        label="Branch",
        policy=ModelValidationPolicy(
            writable_fields={"name", "address", "phone", "email", "manager", "is_active"},
            required_on_create={"name"},
        ),
        unique_fields=("name",),
        delete_guards=(_branch_guard,),
    ),
    "suppliers": EntityDefinition(
        model=Supplier,
        label="Supplier",
        policy=ModelValidationPolicy(
            writable_fields={"name", "nit", "contact_name", "email", "phone", "address", "is_active"},
            required_on_create={"name", "nit"},
        ),
        unique_fields=("nit",),
        delete_guards=(_supplier_guard,),
    ),
    "payment-methods": EntityDefinition(
        model=PaymentMethod,
        label="Payment method",
        policy=ModelValidationPolicy(
            writable_fields={"name", "description", "requires_bank_account", "is_active"},
            required_on_create={"name"},
        ),
        unique_fields=("name",),
        delete_guards=(_payment_method_guard,),
    ),
    "customer-categories": EntityDefinition(
        model=CustomerCategory,
        label="Customer category",
        policy=ModelValidationPolicy(
            writable_fields={"name", "description", "min_purchase_amount", "discount_percentage", "is_active"},
            required_on_create={"name"},
        ),
        unique_fields=("name",),
        delete_guards=(_customer_category_guard,),
        order_by="min_purchase_amount",
    ),
    "customers": EntityDefinition(
        model=Customer,
        label="Customer",
        policy=ModelValidationPolicy(
            writable_fields={"name", "nit", "email", "phone", "address", "category_id"},
            required_on_create={"name"},
        ),
        unique_fields=("nit",),
        foreign_keys={"category_id": CustomerCategory},
        delete_guards=(_customer_guard,),
    ),
}


def get_definition(entity: str) -> EntityDefinition:
    definition = ENTITIES.get(entity)
    if definition is None:
        raise NotFoundError(f"Unknown master data entity: {entity}")
    return definition


def _check_patch(definition: EntityDefinition, patch: dict, *, exclude_id: int | None = None) -> None:
    for field_name in definition.unique_fields:
        if field_name in patch:
            ensure_unique(definition.model, field_name, patch[field_name], exclude_id=exclude_id, label=definition.label)
    for field_name, target in definition.foreign_keys.items():
        if patch.get(field_name) is not None:
            find_active(target, patch[field_name])


def _check_business_rules(definition: EntityDefinition, patch: dict) -> None:
    for field_name in ("min_purchase_amount", "discount_percentage"):
        value = patch.get(field_name)
        if value is not None and value < 0:
            raise ValidationError(f"{field_name} must be >= 0")
    if patch.get("discount_percentage") is not None and patch["discount_percentage"] > 100:
        raise ValidationError("discount_percentage must be <= 100")


# =============================================================================
# CRUD
# =============================================================================

def list_entities(entity: str, *, search: str | None = None, include_deleted: bool = False) -> list:
    definition = get_definition(entity)
    model = definition.model
    query = model.query if include_deleted else model.active_query()
    if search and hasattr(model, "name"):
        query = query.filter(model.name.ilike(f"%{search.strip()}%"))
    return query.order_by(getattr(model, definition.order_by), model.id).all()


def get_entity(entity: str, entity_id: int):
    definition = get_definition(entity)
    return find_active(definition.model, entity_id, definition.label)


def create_entity(entity: str, patch: dict):
    """Create a master-data row from an already validated patch."""
    definition = get_definition(entity)

    def _op():
        _check_business_rules(definition, patch)
        _check_patch(definition, patch)
        obj = definition.model(**patch)
        db.session.add(obj)
        db.session.commit()
        return obj

    return run_atomically(_op)


def update_entity(entity: str, entity_id: int, patch: dict):
    definition = get_definition(entity)

    def _op():
        obj = find_active(definition.model, entity_id, definition.label)
        _check_business_rules(definition, patch)
        _check_patch(definition, patch, exclude_id=obj.id)
        for key, value in patch.items():
            setattr(obj, key, value)
        db.session.commit()
        return obj

    return run_atomically(_op)


def delete_entity(entity: str, entity_id: int):
    """Soft delete; rejected with ConflictError while dependents exist."""
    definition = get_definition(entity)

    def _op():
        obj = find_active(definition.model, entity_id, definition.label)
        for guard in definition.delete_guards:
            reason = guard(obj.id)
            if reason:
                raise ConflictError(f"Cannot delete {definition.label.lower()} {obj.id}: {reason}")
        obj.soft_delete()
        db.session.commit()
        return obj

    return run_atomically(_op)


def restore_entity(entity: str, entity_id: int):
    definition = get_definition(entity)

    def _op():
        obj = find_any(definition.model, entity_id, definition.label)
        if not obj.is_deleted:
            raise ConflictError(f"{definition.label} {entity_id} is not deleted")
        for field_name, target in definition.foreign_keys.items():
            if getattr(obj, field_name) is not None:
                find_active(target, getattr(obj, field_name))
        obj.restore()
        db.session.commit()
        return obj

    return run_atomically(_op)
