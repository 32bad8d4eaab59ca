# Overview: Flask API routes for purchase orders; lifecycle, receiving and payments.

# backend/backoffice/routes/purchases.py
from flask import Blueprint, request

from ..services import purchase_service
from ..services.payment_service import PURCHASE_KIND
from ..validation import ValidationError
from .common import DOMAIN_ERRORS, error_response, internal_error, parse_datetime_field, require_int
from .payments import register_payment_routes

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
def create_purchase():
    """
    Request body:
    {
        "supplier_id": int,
        "details": [{"product_id", "quantity", "unit_price"?, "discount"? | "discount_amount"?, "tax_percentage"?}],
        "invoice_number": str (optional, generated as ORD-YYYY-NNNN),
        "date" / "due_date": ISO-8601 (optional),
        "notes": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        details = payload.get("details")
        if not isinstance(details, list):
            raise ValidationError("details must be a list")
        purchase = purchase_service.create_purchase(
            supplier_id=require_int(payload, "supplier_id"),
            details=details,
            invoice_number=payload.get("invoice_number"),
            date=parse_datetime_field(payload, "date"),
            due_date=parse_datetime_field(payload, "due_date"),
            notes=payload.get("notes"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create purchase")
    return purchase.to_dict(), 201


@purchases_bp.get("")
def list_purchases():
    try:
        purchases = purchase_service.list_purchases(
            supplier_id=request.args.get("supplier_id", type=int),
            status=request.args.get("status"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"items": [p.to_dict(include_lines=False) for p in purchases], "count": len(purchases)}


@purchases_bp.get("/stats")
def purchase_stats():
    return purchase_service.purchase_stats()


@purchases_bp.get("/next-invoice-number")
def next_invoice_number():
    return {"invoice_number": purchase_service.next_purchase_invoice_number()}


@purchases_bp.get("/<int:purchase_id>")
def get_purchase(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    data = purchase.to_dict()
    data["payments"] = [p.to_dict() for p in purchase.payments if not p.is_deleted]
    return data


@purchases_bp.put("/<int:purchase_id>")
def update_purchase(purchase_id: int):
    payload = dict(request.get_json(silent=True) or {})
    try:
        for key in ("date", "due_date"):
            if key in payload:
                payload[key] = parse_datetime_field(payload, key)
        purchase = purchase_service.update_purchase(purchase_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update purchase {purchase_id}")
    return purchase.to_dict()


@purchases_bp.post("/<int:purchase_id>/cancel")
def cancel_purchase(purchase_id: int):
    try:
        purchase = purchase_service.cancel_purchase(purchase_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"cancel purchase {purchase_id}")
    return purchase.to_dict()


@purchases_bp.post("/<int:purchase_id>/receive")
def receive_purchase(purchase_id: int):
    """Body: {"branch_id": int}. Posts one COMPLETED IN movement per line."""
    payload = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.receive_purchase(purchase_id, require_int(payload, "branch_id"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"receive purchase {purchase_id}")
    return purchase.to_dict()


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase(purchase_id: int):
    try:
        purchase = purchase_service.delete_purchase(purchase_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete purchase {purchase_id}")
    return purchase.to_dict(include_lines=False)


@purchases_bp.post("/<int:purchase_id>/restore")
def restore_purchase(purchase_id: int):
    try:
        purchase = purchase_service.restore_purchase(purchase_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore purchase {purchase_id}")
    return purchase.to_dict()


register_payment_routes(purchases_bp, PURCHASE_KIND)
