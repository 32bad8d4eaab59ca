# Overview: Customer routes beyond plain CRUD; loyalty points, purchase stats and lookups.

# backend/backoffice/routes/customers.py
from flask import Blueprint, request

from ..services import customers_service
from ..validation import ValidationError
from .common import DOMAIN_ERRORS, error_response, internal_error, require_int

# CRUD for customers lives in the generic master data routes (/api/customers)
customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/search")
def search_customers():
    term = request.args.get("q", "")
    customers = customers_service.search_customers(term)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.get("/nit/<nit>")
def find_by_nit(nit: str):
    try:
        customer = customers_service.find_by_nit(nit)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return customer.to_dict()


@customers_bp.get("/top")
def top_customers():
    limit = request.args.get("limit", default=10, type=int)
    customers = customers_service.top_customers(limit)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.get("/stats")
def customer_stats():
    return customers_service.customer_stats()


@customers_bp.post("/<int:customer_id>/loyalty/add")
def add_loyalty_points(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customers_service.add_loyalty_points(customer_id, require_int(payload, "points"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"add loyalty points to customer {customer_id}")
    return customer.to_dict()


@customers_bp.post("/<int:customer_id>/loyalty/redeem")
def redeem_loyalty_points(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customers_service.redeem_loyalty_points(customer_id, require_int(payload, "points"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"redeem loyalty points for customer {customer_id}")
    return customer.to_dict()


@customers_bp.post("/<int:customer_id>/purchase-stats")
def update_purchase_stats(customer_id: int):
    """Body: {"amount": "120.00"}. Adds to total_purchases and re-evaluates the category."""
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("amount") is None:
            raise ValidationError("Missing required field: amount")
        customer = customers_service.update_purchase_stats(customer_id, payload["amount"])
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update purchase stats for customer {customer_id}")
    return customer.to_dict()
