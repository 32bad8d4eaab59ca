# backend/backoffice/routes/transfers.py
"""
Inter-branch transfer API routes.

A transfer is addressed by its reference_id, shared by both movement legs.
"""
from flask import Blueprint, request

from ..services import transfer_service
from .common import DOMAIN_ERRORS, error_response, internal_error, require_int


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.post("")
def create_transfer():
    """
    Create both PENDING legs of a transfer.

    Request body:
    {
        "product_id": int,
        "from_branch_id": int,
        "to_branch_id": int,
        "quantity": "5.000",
        "notes": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        404: Product or branch not found
    """
    payload = request.get_json(silent=True) or {}

    try:
        out_leg, in_leg = transfer_service.create_transfer(
            product_id=require_int(payload, "product_id"),
            from_branch_id=require_int(payload, "from_branch_id"),
            to_branch_id=require_int(payload, "to_branch_id"),
            quantity=payload.get("quantity"),
            notes=payload.get("notes"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create transfer")

    return transfer_service.transfer_to_dict(out_leg, in_leg), 201


@transfers_bp.get("")
def list_transfers():
    rows = transfer_service.list_transfers(
        branch_id=request.args.get("branch_id", type=int),
        status=request.args.get("status"),
    )
    return {"items": rows, "count": len(rows)}


@transfers_bp.get("/<reference_id>")
def get_transfer(reference_id: str):
    try:
        out_leg, in_leg = transfer_service.get_transfer(reference_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return transfer_service.transfer_to_dict(out_leg, in_leg)


@transfers_bp.post("/<reference_id>/complete")
def complete_transfer(reference_id: str):
    """
    Complete both legs in one transaction.

    Returns:
        200: Transfer completed
        400: Insufficient stock at the source branch (both legs stay PENDING)
        404: Transfer not found
        409: Already completed or cancelled
    """
    try:
        out_leg, in_leg = transfer_service.complete_transfer(reference_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"complete transfer {reference_id}")
    return transfer_service.transfer_to_dict(out_leg, in_leg)


@transfers_bp.post("/<reference_id>/cancel")
def cancel_transfer(reference_id: str):
    try:
        out_leg, in_leg = transfer_service.cancel_transfer(reference_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"cancel transfer {reference_id}")
    return transfer_service.transfer_to_dict(out_leg, in_leg)


@transfers_bp.delete("/<reference_id>")
def delete_transfer(reference_id: str):
    """
    Soft-delete both legs of a PENDING or CANCELLED transfer.

    Returns:
        200: Transfer deleted
        404: Transfer not found
        409: Transfer completed
    """
    try:
        out_leg, in_leg = transfer_service.delete_transfer(reference_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete transfer {reference_id}")
    return transfer_service.transfer_to_dict(out_leg, in_leg)


@transfers_bp.post("/<reference_id>/restore")
def restore_transfer(reference_id: str):
    try:
        out_leg, in_leg = transfer_service.restore_transfer(reference_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore transfer {reference_id}")
    return transfer_service.transfer_to_dict(out_leg, in_leg)
