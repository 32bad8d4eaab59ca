# Overview: Flask API routes for products; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
from flask import Blueprint, request

from ..models import Product
from ..services import products_service
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_product, validate_payload
from .common import DOMAIN_ERRORS, error_response, internal_error

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name", "sku", "price", "cost"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category_id: int (optional)
    - active: 1 to hide inactive products
    - page / per_page: optional pagination (per_page default 20, max 100)
    """
    result = products_service.list_products(
        category_id=request.args.get("category_id", type=int),
        active_only=request.args.get("active") in ("1", "true"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return result


@products_bp.get("/search")
def search_products():
    term = request.args.get("q", "")
    products = products_service.search_products(term)
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.post("")
def create_product_route():
    """
    Create a product, optionally with opening stock per branch:
    {"initial_stock": [{"branch_id": 1, "stock": "10", "min_stock": "2", "max_stock": "50"}]}
    """
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("initial_stock", None)

    try:
        if initial_stock is not None and not isinstance(initial_stock, list):
            raise ValidationError("initial_stock must be a list")
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(patch=patch, initial_stock=initial_stock)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create product")

    return created.to_dict(), 201


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return product.to_dict()


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        updated = products_service.update_product(product_id, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update product {product_id}")

    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        deleted = products_service.delete_product(product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete product {product_id}")
    return deleted.to_dict()


@products_bp.post("/<int:product_id>/restore")
def restore_product_route(product_id: int):
    try:
        restored = products_service.restore_product(product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore product {product_id}")
    return restored.to_dict()
