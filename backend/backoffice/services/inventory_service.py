# Overview: Stock ledger; append-only movements projected onto per-branch inventory rows.

"""
Stock ledger.

RULES:
- Only the PENDING -> COMPLETED transition of a movement changes stock.
- IN, TRANSFER_IN and ADJUSTMENT add the quantity; OUT and TRANSFER_OUT
  subtract it and fail with InsufficientStockError when stock would go
  negative.
- The Inventory row for (product, branch) is created lazily with stock 0
  on the first completed movement.
- CANCELLED is reachable only from PENDING. A COMPLETED movement is
  undone with a compensating movement, never in place.
- Transfer legs are completed/cancelled through transfer_service so both
  legs move together.

CONCURRENCY: the inventory row is read with SELECT ... FOR UPDATE and
carries an optimistic version_id, so two movements completing for the
same (product, branch) cannot lose an update.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Branch, Inventory, InventoryMovement, Product
from ..models.inventory import (
    INBOUND_TYPES,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_STATUS_CANCELLED,
    MOVEMENT_STATUS_COMPLETED,
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_TYPES,
    OUTBOUND_TYPES,
    TRANSFER_TYPES,
)
from ..money import ZERO, to_money, to_quantity
from ..time_utils import utcnow
from ..validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_atomically
from .master_data_service import find_active, find_any


# =============================================================================
# INVARIANT CHECKS
# =============================================================================

def validate_stock_limits(stock, min_stock, max_stock) -> None:
    """
    Shared by create and update paths:
    min_stock >= 0, max_stock >= 0, min_stock <= max_stock, 0 <= stock <= max_stock.
    """
    stock = to_quantity(stock, "stock")
    min_stock = to_quantity(min_stock, "min_stock")
    if stock < 0:
        raise ValidationError("stock must be >= 0")
    if min_stock < 0:
        raise ValidationError("min_stock must be >= 0")
    if max_stock is None:
        return
    max_stock = to_quantity(max_stock, "max_stock")
    if max_stock < 0:
        raise ValidationError("max_stock must be >= 0")
    if min_stock > max_stock:
        raise ValidationError("min_stock cannot be greater than max_stock")
    if stock > max_stock:
        raise ValidationError("stock cannot be greater than max_stock")


def ensure_stock_managed(product: Product) -> None:
    if not product.manage_stock:
        raise ValidationError(f"Product {product.id} does not manage stock")


def _validate_transfer_branches(movement_type: str, branch_id: int, source_branch_id, target_branch_id) -> None:
    if movement_type not in TRANSFER_TYPES:
        if source_branch_id is not None or target_branch_id is not None:
            raise ValidationError("source/target branches are only valid for transfer movements")
        return
    if source_branch_id is None or target_branch_id is None:
        raise ValidationError("Transfer movements require source and target branches")
    if source_branch_id == target_branch_id:
        raise ValidationError("Source and target branches must be different")
    expected = source_branch_id if movement_type == "TRANSFER_OUT" else target_branch_id
    if branch_id != expected:
        raise ValidationError("Transfer movement branch must match its source (OUT) or target (IN)")


# =============================================================================
# LEDGER CORE
# =============================================================================

def _load_inventory_for_update(product_id: int, branch_id: int) -> Inventory:
    """Load-or-create the inventory row, locked for the rest of the transaction."""
    inventory = lock_for_update(
        db.session.query(Inventory).filter_by(product_id=product_id, branch_id=branch_id)
    ).first()
    if inventory is None:
        inventory = Inventory(
            product_id=product_id,
            branch_id=branch_id,
            stock=Decimal("0.000"),
            min_stock=Decimal("0.000"),
            max_stock=None,
        )
        db.session.add(inventory)
        db.session.flush()
    elif inventory.is_deleted:
        inventory.restore()
    return inventory


def apply_movement(movement: InventoryMovement) -> Inventory:
    """
    Transition a PENDING movement to COMPLETED and apply its stock effect.

    Does not commit: callers run it inside their own unit of work so that
    several movements (a transfer pair, every line of a sale) succeed or
    fail together.
    """
    if movement.status == MOVEMENT_STATUS_COMPLETED:
        raise ConflictError(f"Movement {movement.id} is already completed")
    if movement.status == MOVEMENT_STATUS_CANCELLED:
        raise ConflictError(f"Movement {movement.id} is cancelled")

    inventory = _load_inventory_for_update(movement.product_id, movement.branch_id)
    quantity = to_quantity(movement.quantity)
    current = to_quantity(inventory.stock)

    if movement.movement_type in INBOUND_TYPES:
        inventory.stock = current + quantity
    elif movement.movement_type in OUTBOUND_TYPES:
        if current < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for product {movement.product_id} at branch "
                f"{movement.branch_id}: available {current}, requested {quantity}"
            )
        inventory.stock = current - quantity
    else:
        raise ValidationError(f"Unknown movement type: {movement.movement_type}")

    now = utcnow()
    inventory.last_movement_date = now
    movement.inventory_id = inventory.id
    movement.status = MOVEMENT_STATUS_COMPLETED
    movement.completed_at = now
    db.session.flush()

    current_app.logger.info(
        "Movement %s (%s %s) completed: product=%s branch=%s stock=%s",
        movement.id, movement.movement_type, quantity,
        movement.product_id, movement.branch_id, inventory.stock,
    )
    return inventory


def build_movement(
    *,
    product: Product,
    branch_id: int,
    quantity,
    movement_type: str,
    unit_cost=None,
    notes: str | None = None,
    movement_date: datetime | None = None,
    reference_id: str | None = None,
    source_branch_id: int | None = None,
    target_branch_id: int | None = None,
) -> InventoryMovement:
    """Validate and stage a PENDING movement (flushes, does not commit)."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of {', '.join(sorted(MOVEMENT_TYPES))}")
    qty = to_quantity(quantity, "quantity")
    if qty <= 0:
        raise ValidationError("quantity must be > 0")
    ensure_stock_managed(product)
    _validate_transfer_branches(movement_type, branch_id, source_branch_id, target_branch_id)

    cost = to_money(product.cost if unit_cost is None else unit_cost, "unit_cost")
    if cost < 0:
        raise ValidationError("unit_cost must be >= 0")

    movement = InventoryMovement(
        product_id=product.id,
        branch_id=branch_id,
        quantity=qty,
        movement_type=movement_type,
        status=MOVEMENT_STATUS_PENDING,
        reference_id=reference_id,
        source_branch_id=source_branch_id,
        target_branch_id=target_branch_id,
        unit_cost=cost,
        total_cost=to_money(cost * qty),
        movement_date=movement_date or utcnow(),
        notes=notes,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def create_movement(
    *,
    product_id: int,
    branch_id: int,
    quantity,
    movement_type: str,
    unit_cost=None,
    notes: str | None = None,
    movement_date: datetime | None = None,
    complete: bool = False,
) -> InventoryMovement:
    """
    Create a stand-alone movement (PENDING unless complete=True).

    Transfer legs are created with transfer_service.create_transfer.
    """
    def _op():
        if movement_type in TRANSFER_TYPES:
            raise ValidationError("Use the transfer endpoints to create transfer movements")
        product = find_active(Product, product_id, "Product")
        find_active(Branch, branch_id, "Branch")
        movement = build_movement(
            product=product,
            branch_id=branch_id,
            quantity=quantity,
            movement_type=movement_type,
            unit_cost=unit_cost,
            notes=notes,
            movement_date=movement_date,
        )
        if complete:
            apply_movement(movement)
        db.session.commit()
        return movement

    return run_atomically(_op)


def adjust_stock(*, product_id: int, branch_id: int, quantity, notes: str | None = None) -> InventoryMovement:
    """Manual positive adjustment, completed immediately."""
    return create_movement(
        product_id=product_id,
        branch_id=branch_id,
        quantity=quantity,
        movement_type=MOVEMENT_ADJUSTMENT,
        notes=notes or "Manual adjustment",
        complete=True,
    )


def _get_movement_for_update(movement_id: int) -> InventoryMovement:
    movement = lock_for_update(
        db.session.query(InventoryMovement).filter_by(id=movement_id)
    ).first()
    if movement is None or movement.is_deleted:
        raise NotFoundError(f"Movement {movement_id} not found")
    return movement


def complete_movement(movement_id: int) -> InventoryMovement:
    def _op():
        movement = _get_movement_for_update(movement_id)
        if movement.movement_type in TRANSFER_TYPES and movement.status == MOVEMENT_STATUS_PENDING:
            raise ValidationError("Transfer movements are completed through their transfer")
        apply_movement(movement)
        db.session.commit()
        return movement

    return run_atomically(_op)


def cancel_movement(movement_id: int) -> InventoryMovement:
    """PENDING -> CANCELLED. No stock effect."""
    def _op():
        movement = _get_movement_for_update(movement_id)
        if movement.status == MOVEMENT_STATUS_CANCELLED:
            raise ConflictError(f"Movement {movement_id} is already cancelled")
        if movement.status == MOVEMENT_STATUS_COMPLETED:
            raise ConflictError(
                f"Movement {movement_id} is completed; record a compensating movement instead"
            )
        if movement.movement_type in TRANSFER_TYPES:
            raise ValidationError("Transfer movements are cancelled through their transfer")
        movement.status = MOVEMENT_STATUS_CANCELLED
        db.session.commit()
        return movement

    return run_atomically(_op)


def update_movement(movement_id: int, *, notes=None, movement_date=None, unit_cost=None) -> InventoryMovement:
    """Edit descriptive fields of a PENDING movement."""
    def _op():
        movement = _get_movement_for_update(movement_id)
        if movement.status != MOVEMENT_STATUS_PENDING:
            raise ConflictError(f"Movement {movement_id} is {movement.status.lower()} and cannot be edited")
        if notes is not None:
            movement.notes = notes
        if movement_date is not None:
            movement.movement_date = movement_date
        if unit_cost is not None:
            cost = to_money(unit_cost, "unit_cost")
            if cost < 0:
                raise ValidationError("unit_cost must be >= 0")
            movement.unit_cost = cost
            movement.total_cost = to_money(cost * to_quantity(movement.quantity))
        db.session.commit()
        return movement

    return run_atomically(_op)


def delete_movement(movement_id: int) -> InventoryMovement:
    def _op():
        movement = _get_movement_for_update(movement_id)
        if movement.movement_type in TRANSFER_TYPES:
            raise ValidationError("Transfer movements are deleted through their transfer")
        if movement.status == MOVEMENT_STATUS_COMPLETED:
            raise ConflictError(f"Movement {movement_id} is completed and part of the stock history")
        movement.soft_delete()
        db.session.commit()
        return movement

    return run_atomically(_op)


def restore_movement(movement_id: int) -> InventoryMovement:
    def _op():
        movement = find_any(InventoryMovement, movement_id, "Movement")
        if movement.movement_type in TRANSFER_TYPES:
            raise ValidationError("Transfer movements are restored through their transfer")
        if not movement.is_deleted:
            raise ConflictError(f"Movement {movement_id} is not deleted")
        movement.restore()
        db.session.commit()
        return movement

    return run_atomically(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_movement(movement_id: int) -> InventoryMovement:
    return find_active(InventoryMovement, movement_id, "Movement")


def list_movements(
    *,
    product_id: int | None = None,
    branch_id: int | None = None,
    movement_type: str | None = None,
    status: str | None = None,
    reference_id: str | None = None,
) -> list[InventoryMovement]:
    query = InventoryMovement.active_query()
    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if branch_id is not None:
        query = query.filter(InventoryMovement.branch_id == branch_id)
    if movement_type:
        query = query.filter(InventoryMovement.movement_type == movement_type)
    if status:
        query = query.filter(InventoryMovement.status == status)
    if reference_id:
        query = query.filter(InventoryMovement.reference_id == reference_id)
    return query.order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc()).all()


def movement_stats(branch_id: int | None = None) -> dict:
    query = db.session.query(
        InventoryMovement.movement_type, InventoryMovement.status, func.count(InventoryMovement.id)
    ).filter(InventoryMovement.deleted_at.is_(None))
    if branch_id is not None:
        query = query.filter(InventoryMovement.branch_id == branch_id)

    stats = {
        "total": 0,
        "completed": 0,
        "pending": 0,
        "cancelled": 0,
        "by_type": {t: 0 for t in sorted(MOVEMENT_TYPES)},
    }
    for movement_type, status, count in query.group_by(InventoryMovement.movement_type, InventoryMovement.status):
        stats["total"] += count
        stats["by_type"][movement_type] = stats["by_type"].get(movement_type, 0) + count
        stats[status.lower()] = stats.get(status.lower(), 0) + count
    return stats


def get_inventory(inventory_id: int) -> Inventory:
    return find_active(Inventory, inventory_id, "Inventory")


def list_inventories(*, branch_id: int | None = None, product_id: int | None = None) -> list[Inventory]:
    query = Inventory.active_query()
    if branch_id is not None:
        query = query.filter(Inventory.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(Inventory.product_id == product_id)
    return query.order_by(Inventory.branch_id, Inventory.product_id).all()


def get_stock(product_id: int, branch_id: int) -> Decimal:
    """Current stock; 0 when the pair has never moved."""
    inventory = Inventory.active_query().filter_by(product_id=product_id, branch_id=branch_id).first()
    if inventory is None:
        return Decimal("0.000")
    return to_quantity(inventory.stock)


def update_inventory_limits(inventory_id: int, patch: dict) -> Inventory:
    """Only min_stock / max_stock are editable; stock moves through movements."""
    def _op():
        inventory = lock_for_update(db.session.query(Inventory).filter_by(id=inventory_id)).first()
        if inventory is None or inventory.is_deleted:
            raise NotFoundError(f"Inventory {inventory_id} not found")
        if "stock" in patch:
            raise ValidationError("stock can only change through inventory movements")
        min_stock = patch.get("min_stock", inventory.min_stock)
        max_stock = patch["max_stock"] if "max_stock" in patch else inventory.max_stock
        validate_stock_limits(inventory.stock, min_stock, max_stock)
        inventory.min_stock = to_quantity(min_stock, "min_stock")
        inventory.max_stock = None if max_stock is None else to_quantity(max_stock, "max_stock")
        db.session.commit()
        return inventory

    return run_atomically(_op)


def set_initial_limits(inventory: Inventory, min_stock=None, max_stock=None) -> None:
    """Used when a product is created with initial stock per branch (no commit)."""
    validate_stock_limits(inventory.stock, min_stock or 0, max_stock)
    inventory.min_stock = to_quantity(min_stock or 0, "min_stock")
    inventory.max_stock = None if max_stock is None else to_quantity(max_stock, "max_stock")


def delete_inventory(inventory_id: int) -> Inventory:
    def _op():
        inventory = find_active(Inventory, inventory_id, "Inventory")
        has_movements = db.session.query(
            InventoryMovement.query.filter(InventoryMovement.inventory_id == inventory.id).exists()
        ).scalar()
        if has_movements:
            raise ConflictError(f"Inventory {inventory_id} has movements and cannot be deleted")
        inventory.soft_delete()
        db.session.commit()
        return inventory

    return run_atomically(_op)


def restore_inventory(inventory_id: int) -> Inventory:
    def _op():
        inventory = find_any(Inventory, inventory_id, "Inventory")
        if not inventory.is_deleted:
            raise ConflictError(f"Inventory {inventory_id} is not deleted")
        find_active(Product, inventory.product_id, "Product")
        find_active(Branch, inventory.branch_id, "Branch")
        inventory.restore()
        db.session.commit()
        return inventory

    return run_atomically(_op)


def low_stock(branch_id: int | None = None) -> list[Inventory]:
    query = Inventory.active_query().filter(Inventory.stock <= Inventory.min_stock)
    if branch_id is not None:
        query = query.filter(Inventory.branch_id == branch_id)
    return query.order_by(Inventory.branch_id, Inventory.product_id).all()


def inventory_stats(branch_id: int | None = None) -> dict:
    rows = list_inventories(branch_id=branch_id)
    total_units = Decimal("0.000")
    total_value = ZERO
    low = 0
    out_of_stock = 0
    for inventory in rows:
        stock = to_quantity(inventory.stock)
        total_units += stock
        total_value += to_money(stock * to_money(inventory.product.cost))
        if stock <= to_quantity(inventory.min_stock):
            low += 1
        if stock == 0:
            out_of_stock += 1
    return {
        "inventories": len(rows),
        "total_units": total_units,
        "total_value": total_value,
        "low_stock": low,
        "out_of_stock": out_of_stock,
    }


def ledger_drift() -> list[dict]:
    """
    Compare every inventory row against the net of its COMPLETED movements.

    Returns one entry per (product, branch) whose stored stock differs.
    """
    inbound = db.session.query(
        InventoryMovement.product_id,
        InventoryMovement.branch_id,
        InventoryMovement.movement_type,
        func.sum(InventoryMovement.quantity),
    ).filter(
        InventoryMovement.status == MOVEMENT_STATUS_COMPLETED,
    ).group_by(
        InventoryMovement.product_id, InventoryMovement.branch_id, InventoryMovement.movement_type
    )

    expected: dict[tuple[int, int], Decimal] = {}
    for product_id, branch_id, movement_type, total in inbound:
        key = (product_id, branch_id)
        amount = to_quantity(total or 0)
        if movement_type in OUTBOUND_TYPES:
            amount = -amount
        expected[key] = expected.get(key, Decimal("0.000")) + amount

    drift = []
    seen = set()
    for inventory in Inventory.query.all():
        key = (inventory.product_id, inventory.branch_id)
        seen.add(key)
        want = expected.get(key, Decimal("0.000"))
        have = to_quantity(inventory.stock)
        if want != have:
            drift.append({"product_id": key[0], "branch_id": key[1], "stock": have, "expected": want})
    for key, want in expected.items():
        if key not in seen and want != 0:
            drift.append({"product_id": key[0], "branch_id": key[1], "stock": None, "expected": want})
    return drift
