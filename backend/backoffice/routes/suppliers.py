# Overview: Supplier routes beyond plain CRUD; search and purchase statistics.

# backend/backoffice/routes/suppliers.py
from flask import Blueprint, request

from ..services import suppliers_service
from .common import DOMAIN_ERRORS, error_response

# CRUD for suppliers lives in the generic master data routes (/api/suppliers)
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("/search")
def search_suppliers():
    suppliers = suppliers_service.search_suppliers(request.args.get("q", ""))
    return {"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}


@suppliers_bp.get("/stats")
def supplier_stats():
    return suppliers_service.supplier_stats()


@suppliers_bp.get("/<int:supplier_id>/stats")
def supplier_purchase_stats(supplier_id: int):
    try:
        return suppliers_service.supplier_purchase_stats(supplier_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
