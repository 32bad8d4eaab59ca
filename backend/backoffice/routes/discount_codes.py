# Overview: Flask API routes for discount codes; CRUD, validation and usage recording.

# backend/backoffice/routes/discount_codes.py
from flask import Blueprint, request

from ..models import DiscountCode
from ..services import discount_service
from ..validation import ValidationError, validate_payload
from .common import DOMAIN_ERRORS, error_response, internal_error, optional_int

discount_codes_bp = Blueprint("discount_codes", __name__, url_prefix="/api/discount-codes")


@discount_codes_bp.post("")
def create_discount_code():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=DiscountCode, payload=payload, policy=discount_service.DISCOUNT_CODE_POLICY, partial=False
        )
        code = discount_service.create_discount_code(patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create discount code")
    return code.to_dict(), 201


@discount_codes_bp.get("")
def list_discount_codes():
    """Query params: active=1 to list only codes usable right now."""
    codes = discount_service.list_discount_codes(active_only=request.args.get("active") in ("1", "true"))
    return {"items": [c.to_dict() for c in codes], "count": len(codes)}


@discount_codes_bp.get("/stats")
def discount_code_stats():
    return discount_service.discount_code_stats()


@discount_codes_bp.post("/validate")
def validate_discount_code():
    """
    Request body:
    {
        "code": str,
        "purchase_amount": "250.00",
        "customer_id": int (optional),
        "product_id": int (optional)
    }

    Always 200; the verdict is in is_valid / message.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if not payload.get("code"):
            raise ValidationError("Missing required field: code")
        result = discount_service.validate_code(
            payload["code"],
            customer_id=optional_int(payload, "customer_id"),
            product_id=optional_int(payload, "product_id"),
            purchase_amount=payload.get("purchase_amount") or 0,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return result.to_dict()


@discount_codes_bp.post("/apply")
def apply_discount_code():
    """Body: {"code": str}. Records one use of the code."""
    payload = request.get_json(silent=True) or {}
    try:
        if not payload.get("code"):
            raise ValidationError("Missing required field: code")
        code = discount_service.apply_code(payload["code"])
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("apply discount code")
    return code.to_dict()


@discount_codes_bp.get("/code/<code>")
def find_by_code(code: str):
    found = discount_service.find_by_code(code)
    if found is None:
        return {"error": f"Discount code '{code}' not found"}, 404
    return found.to_dict()


@discount_codes_bp.get("/<int:code_id>")
def get_discount_code(code_id: int):
    try:
        code = discount_service.get_discount_code(code_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return code.to_dict()


@discount_codes_bp.put("/<int:code_id>")
def update_discount_code(code_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=DiscountCode, payload=payload, policy=discount_service.DISCOUNT_CODE_POLICY, partial=True
        )
        code = discount_service.update_discount_code(code_id, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update discount code {code_id}")
    return code.to_dict()


@discount_codes_bp.post("/<int:code_id>/toggle")
def toggle_discount_code(code_id: int):
    try:
        code = discount_service.toggle_discount_code(code_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"toggle discount code {code_id}")
    return code.to_dict()


@discount_codes_bp.delete("/<int:code_id>")
def delete_discount_code(code_id: int):
    try:
        code = discount_service.delete_discount_code(code_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete discount code {code_id}")
    return code.to_dict()


@discount_codes_bp.post("/<int:code_id>/restore")
def restore_discount_code(code_id: int):
    try:
        code = discount_service.restore_discount_code(code_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore discount code {code_id}")
    return code.to_dict()
