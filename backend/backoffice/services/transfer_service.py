# backend/backoffice/services/transfer_service.py
"""
Inter-branch stock transfers.

A transfer is a TRANSFER_OUT movement at the source branch and a
TRANSFER_IN movement at the target branch sharing one reference_id.

LIFECYCLE:
1. PENDING: both legs created, no stock effect
2. COMPLETED: both legs applied in one transaction; if the source lacks
   stock neither leg changes
3. CANCELLED: both PENDING legs cancelled together

Legs only ever change state or deletedness as a pair.
"""
from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import db
from ..models import Branch, InventoryMovement, Product
from ..models.inventory import (
    MOVEMENT_STATUS_CANCELLED,
    MOVEMENT_STATUS_COMPLETED,
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
)
from ..money import to_quantity
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_atomically
from .inventory_service import apply_movement, build_movement
from .master_data_service import find_active


def new_reference_id() -> str:
    return uuid.uuid4().hex


def _load_pair(
    reference_id: str, *, for_update: bool = False, deleted: bool = False
) -> tuple[InventoryMovement, InventoryMovement]:
    """Return (out_leg, in_leg) or raise NotFoundError unless exactly that pair exists."""
    if not reference_id:
        raise NotFoundError("Transfer reference is required")
    deleted_filter = (
        InventoryMovement.deleted_at.isnot(None) if deleted else InventoryMovement.deleted_at.is_(None)
    )
    query = db.session.query(InventoryMovement).filter(
        InventoryMovement.reference_id == reference_id,
        deleted_filter,
    ).order_by(InventoryMovement.id)
    if for_update:
        query = lock_for_update(query)
    movements = query.all()

    by_type = {m.movement_type: m for m in movements}
    if (
        len(movements) != 2
        or MOVEMENT_TRANSFER_OUT not in by_type
        or MOVEMENT_TRANSFER_IN not in by_type
    ):
        raise NotFoundError(f"Transfer {reference_id} not found")
    return by_type[MOVEMENT_TRANSFER_OUT], by_type[MOVEMENT_TRANSFER_IN]


def transfer_to_dict(out_leg: InventoryMovement, in_leg: InventoryMovement) -> dict:
    if out_leg.status == in_leg.status:
        status = out_leg.status
    else:
        status = "INCONSISTENT"
    return {
        "reference_id": out_leg.reference_id,
        "product_id": out_leg.product_id,
        "from_branch_id": out_leg.branch_id,
        "to_branch_id": in_leg.branch_id,
        "quantity": str(to_quantity(out_leg.quantity)),
        "status": status,
        "out_movement": out_leg.to_dict(),
        "in_movement": in_leg.to_dict(),
    }


def create_transfer(
    product_id: int,
    from_branch_id: int,
    to_branch_id: int,
    quantity,
    notes: str | None = None,
) -> tuple[InventoryMovement, InventoryMovement]:
    """
    Create both PENDING legs of a transfer.

    Returns:
        (out_movement, in_movement) sharing a generated reference_id

    Raises:
        ValidationError: same branch, non-positive quantity, unmanaged product
        NotFoundError: product or either branch missing
    """
    def _op():
        if from_branch_id == to_branch_id:
            raise ValidationError("Cannot transfer to the same branch")
        qty = to_quantity(quantity, "quantity")
        if qty <= 0:
            raise ValidationError("quantity must be > 0")

        product = find_active(Product, product_id, "Product")
        find_active(Branch, from_branch_id, "Branch")
        find_active(Branch, to_branch_id, "Branch")

        reference_id = new_reference_id()
        legs = {}
        for movement_type, branch_id in (
            (MOVEMENT_TRANSFER_OUT, from_branch_id),
            (MOVEMENT_TRANSFER_IN, to_branch_id),
        ):
            legs[movement_type] = build_movement(
                product=product,
                branch_id=branch_id,
                quantity=qty,
                movement_type=movement_type,
                notes=notes,
                reference_id=reference_id,
                source_branch_id=from_branch_id,
                target_branch_id=to_branch_id,
            )

        db.session.commit()
        return legs[MOVEMENT_TRANSFER_OUT], legs[MOVEMENT_TRANSFER_IN]

    return run_atomically(_op)


def complete_transfer(reference_id: str) -> tuple[InventoryMovement, InventoryMovement]:
    """
    Apply both legs atomically. The OUT leg is applied first so an
    insufficient-stock failure aborts before the IN leg touches stock;
    either way the rollback leaves both legs PENDING.
    """
    def _op():
        out_leg, in_leg = _load_pair(reference_id, for_update=True)
        if out_leg.status == MOVEMENT_STATUS_COMPLETED and in_leg.status == MOVEMENT_STATUS_COMPLETED:
            raise ConflictError(f"Transfer {reference_id} is already completed")
        if MOVEMENT_STATUS_CANCELLED in (out_leg.status, in_leg.status):
            raise ConflictError(f"Transfer {reference_id} is cancelled")

        apply_movement(out_leg)
        apply_movement(in_leg)
        db.session.commit()

        current_app.logger.info(
            "Transfer %s completed: product=%s qty=%s from=%s to=%s",
            reference_id, out_leg.product_id, out_leg.quantity, out_leg.branch_id, in_leg.branch_id,
        )
        return out_leg, in_leg

    return run_atomically(_op)


def cancel_transfer(reference_id: str) -> tuple[InventoryMovement, InventoryMovement]:
    def _op():
        out_leg, in_leg = _load_pair(reference_id, for_update=True)
        if out_leg.status == MOVEMENT_STATUS_CANCELLED and in_leg.status == MOVEMENT_STATUS_CANCELLED:
            raise ConflictError(f"Transfer {reference_id} is already cancelled")
        if MOVEMENT_STATUS_COMPLETED in (out_leg.status, in_leg.status):
            raise ConflictError(
                f"Transfer {reference_id} is completed; create a reverse transfer instead"
            )
        for leg in (out_leg, in_leg):
            if leg.status == MOVEMENT_STATUS_PENDING:
                leg.status = MOVEMENT_STATUS_CANCELLED
        db.session.commit()
        return out_leg, in_leg

    return run_atomically(_op)


def delete_transfer(reference_id: str) -> tuple[InventoryMovement, InventoryMovement]:
    """Soft-delete both legs of a transfer that never touched stock."""
    def _op():
        out_leg, in_leg = _load_pair(reference_id, for_update=True)
        if MOVEMENT_STATUS_COMPLETED in (out_leg.status, in_leg.status):
            raise ConflictError(f"Transfer {reference_id} is completed and part of the stock history")
        out_leg.soft_delete()
        in_leg.soft_delete()
        db.session.commit()
        return out_leg, in_leg

    return run_atomically(_op)


def restore_transfer(reference_id: str) -> tuple[InventoryMovement, InventoryMovement]:
    def _op():
        out_leg, in_leg = _load_pair(reference_id, for_update=True, deleted=True)
        out_leg.restore()
        in_leg.restore()
        db.session.commit()
        return out_leg, in_leg

    return run_atomically(_op)

def get_transfer(reference_id: str) -> tuple[InventoryMovement, InventoryMovement]:
    return _load_pair(reference_id)


def list_transfers(*, branch_id: int | None = None, status: str | None = None) -> list[dict]:
    query = InventoryMovement.active_query().filter(
        InventoryMovement.movement_type == MOVEMENT_TRANSFER_OUT,
        InventoryMovement.reference_id.isnot(None),
    )
    if branch_id is not None:
        query = query.filter(
            (InventoryMovement.source_branch_id == branch_id)
            | (InventoryMovement.target_branch_id == branch_id)
        )
    if status:
        query = query.filter(InventoryMovement.status == status)

    rows = []
    for out_leg in query.order_by(InventoryMovement.id.desc()).all():
        try:
            rows.append(transfer_to_dict(*_load_pair(out_leg.reference_id)))
        except NotFoundError:
            current_app.logger.warning("Transfer %s has an incomplete leg pair", out_leg.reference_id)
    return rows
