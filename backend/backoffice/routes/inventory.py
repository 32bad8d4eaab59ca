# Overview: Flask API routes for the stock ledger (movements) and per-branch inventory rows.

# backend/backoffice/routes/inventory.py
from flask import Blueprint, request

from ..services import inventory_service
from ..validation import ValidationError
from .common import DOMAIN_ERRORS, error_response, internal_error, parse_datetime_field, require_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


# =============================================================================
# MOVEMENTS
# =============================================================================

@inventory_bp.post("/movements")
def create_movement():
    """
    Create a stand-alone movement.

    Request body:
    {
        "product_id": int,
        "branch_id": int,
        "quantity": "10.000",
        "movement_type": "IN" | "OUT" | "ADJUSTMENT",
        "unit_cost": "2.50" (optional, defaults to product cost),
        "notes": str (optional),
        "movement_date": ISO-8601 (optional),
        "complete": bool (optional, default false)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        complete = payload.get("complete", False)
        if not isinstance(complete, bool):
            raise ValidationError("complete must be a boolean")
        movement = inventory_service.create_movement(
            product_id=require_int(payload, "product_id"),
            branch_id=require_int(payload, "branch_id"),
            quantity=payload.get("quantity"),
            movement_type=payload.get("movement_type"),
            unit_cost=payload.get("unit_cost"),
            notes=payload.get("notes"),
            movement_date=parse_datetime_field(payload, "movement_date"),
            complete=complete,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create movement")
    return movement.to_dict(), 201


@inventory_bp.post("/adjust")
def adjust_stock():
    payload = request.get_json(silent=True) or {}
    try:
        movement = inventory_service.adjust_stock(
            product_id=require_int(payload, "product_id"),
            branch_id=require_int(payload, "branch_id"),
            quantity=payload.get("quantity"),
            notes=payload.get("notes"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("adjust stock")
    return movement.to_dict(), 201


@inventory_bp.get("/movements")
def list_movements():
    movements = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        branch_id=request.args.get("branch_id", type=int),
        movement_type=request.args.get("movement_type"),
        status=request.args.get("status"),
        reference_id=request.args.get("reference_id"),
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/movements/stats")
def movement_stats():
    return inventory_service.movement_stats(branch_id=request.args.get("branch_id", type=int))


@inventory_bp.get("/movements/<int:movement_id>")
def get_movement(movement_id: int):
    try:
        movement = inventory_service.get_movement(movement_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return movement.to_dict()


@inventory_bp.put("/movements/<int:movement_id>")
def update_movement(movement_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        unknown = set(payload) - {"notes", "movement_date", "unit_cost"}
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
        movement = inventory_service.update_movement(
            movement_id,
            notes=payload.get("notes"),
            movement_date=parse_datetime_field(payload, "movement_date"),
            unit_cost=payload.get("unit_cost"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update movement {movement_id}")
    return movement.to_dict()


@inventory_bp.post("/movements/<int:movement_id>/complete")
def complete_movement(movement_id: int):
    try:
        movement = inventory_service.complete_movement(movement_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"complete movement {movement_id}")
    return movement.to_dict()


@inventory_bp.post("/movements/<int:movement_id>/cancel")
def cancel_movement(movement_id: int):
    try:
        movement = inventory_service.cancel_movement(movement_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"cancel movement {movement_id}")
    return movement.to_dict()


@inventory_bp.delete("/movements/<int:movement_id>")
def delete_movement(movement_id: int):
    try:
        movement = inventory_service.delete_movement(movement_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete movement {movement_id}")
    return movement.to_dict()


@inventory_bp.post("/movements/<int:movement_id>/restore")
def restore_movement(movement_id: int):
    try:
        movement = inventory_service.restore_movement(movement_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore movement {movement_id}")
    return movement.to_dict()


# =============================================================================
# INVENTORY ROWS
# =============================================================================

@inventory_bp.get("")
def list_inventories():
    rows = inventory_service.list_inventories(
        branch_id=request.args.get("branch_id", type=int),
        product_id=request.args.get("product_id", type=int),
    )
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}


@inventory_bp.get("/stock")
def get_stock():
    product_id = request.args.get("product_id", type=int)
    branch_id = request.args.get("branch_id", type=int)
    if product_id is None or branch_id is None:
        return {"error": "product_id and branch_id are required"}, 400
    stock = inventory_service.get_stock(product_id, branch_id)
    return {"product_id": product_id, "branch_id": branch_id, "stock": str(stock)}


@inventory_bp.get("/low-stock")
def low_stock():
    rows = inventory_service.low_stock(branch_id=request.args.get("branch_id", type=int))
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}


@inventory_bp.get("/stats")
def inventory_stats():
    return inventory_service.inventory_stats(branch_id=request.args.get("branch_id", type=int))


@inventory_bp.get("/<int:inventory_id>")
def get_inventory(inventory_id: int):
    try:
        inventory = inventory_service.get_inventory(inventory_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return inventory.to_dict()


@inventory_bp.put("/<int:inventory_id>")
def update_inventory_limits(inventory_id: int):
    """Body: {"min_stock"?, "max_stock"?}. stock itself only moves through movements."""
    payload = request.get_json(silent=True) or {}
    try:
        unknown = set(payload) - {"min_stock", "max_stock", "stock"}
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
        inventory = inventory_service.update_inventory_limits(inventory_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update inventory {inventory_id}")
    return inventory.to_dict()


@inventory_bp.delete("/<int:inventory_id>")
def delete_inventory(inventory_id: int):
    try:
        inventory = inventory_service.delete_inventory(inventory_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete inventory {inventory_id}")
    return inventory.to_dict()


@inventory_bp.post("/<int:inventory_id>/restore")
def restore_inventory(inventory_id: int):
    try:
        inventory = inventory_service.restore_inventory(inventory_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore inventory {inventory_id}")
    return inventory.to_dict()
