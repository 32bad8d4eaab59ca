# Overview: Flask API routes for sales; creation, confirmation, cancellation, line edits and payments.

# backend/backoffice/routes/sales.py
from flask import Blueprint, request

from ..services import sales_service
from ..services.payment_service import SALE_KIND
from ..validation import ValidationError
from .common import (
    DOMAIN_ERRORS,
    error_response,
    internal_error,
    optional_int,
    parse_date_arg,
    parse_datetime_field,
    require_int,
)
from .payments import register_payment_routes

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale():
    """
    Request body:
    {
        "branch_id": int,
        "customer_id": int  | "guest_customer": {"name", "nit"?, "email"?, "phone"?},
        "details": [{"product_id", "quantity", "unit_price"?, "discount"? | "discount_amount"?, "tax_percentage"?}],
        "discount_code": str (optional) | "discount_code_id": int (optional),
        "discounts": [{"discount_type": "percent" | "amount", "value", "reason"?}] (optional),
        "invoice_number": str (optional, generated as VEN-YYYY-NNNN),
        "date" / "due_date": ISO-8601 (optional),
        "notes": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        details = payload.get("details")
        if not isinstance(details, list):
            raise ValidationError("details must be a list")
        discounts = payload.get("discounts") or []
        if not isinstance(discounts, list):
            raise ValidationError("discounts must be a list")
        sale = sales_service.create_sale(
            branch_id=require_int(payload, "branch_id"),
            details=details,
            customer_id=optional_int(payload, "customer_id"),
            guest_customer=payload.get("guest_customer"),
            discount_code=payload.get("discount_code"),
            discount_code_id=optional_int(payload, "discount_code_id"),
            discounts=discounts,
            invoice_number=payload.get("invoice_number"),
            date=parse_datetime_field(payload, "date"),
            due_date=parse_datetime_field(payload, "due_date"),
            notes=payload.get("notes"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("create sale")
    return sale.to_dict(), 201


@sales_bp.get("")
def list_sales():
    try:
        sales = sales_service.list_sales(
            customer_id=request.args.get("customer_id", type=int),
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return {"items": [s.to_dict(include_lines=False) for s in sales], "count": len(sales)}


@sales_bp.get("/daily")
def daily_sales():
    """Query params: date=YYYY-MM-DD (default today, UTC), branch_id (optional)."""
    try:
        summary = sales_service.daily_sales(
            parse_date_arg(request.args.get("date"), "date"),
            branch_id=request.args.get("branch_id", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    summary["sales"] = [s.to_dict(include_lines=False) for s in summary["sales"]]
    return summary


@sales_bp.get("/next-invoice-number")
def next_invoice_number():
    return {"invoice_number": sales_service.next_sale_invoice_number()}


@sales_bp.get("/<int:sale_id>")
def get_sale(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    data = sale.to_dict()
    data["payments"] = [p.to_dict() for p in sale.payments if not p.is_deleted]
    return data


@sales_bp.put("/<int:sale_id>")
def update_sale(sale_id: int):
    payload = dict(request.get_json(silent=True) or {})
    try:
        for key in ("date", "due_date"):
            if key in payload:
                payload[key] = parse_datetime_field(payload, key)
        sale = sales_service.update_sale(sale_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update sale {sale_id}")
    return sale.to_dict()


@sales_bp.put("/<int:sale_id>/lines/<int:detail_id>")
def update_sale_line(sale_id: int, detail_id: int):
    """Body: {"quantity": "3"}; the sale is repriced."""
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("quantity") is None:
            raise ValidationError("Missing required field: quantity")
        sale = sales_service.update_sale_line_quantity(sale_id, detail_id, payload["quantity"])
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"update line {detail_id} of sale {sale_id}")
    return sale.to_dict()


@sales_bp.post("/<int:sale_id>/lines")
def add_sale_line(sale_id: int):
    """Body: one line as in create_sale's details; the sale is repriced."""
    payload = request.get_json(silent=True)
    try:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        sale = sales_service.add_sale_line(sale_id, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"add line to sale {sale_id}")
    return sale.to_dict(), 201


@sales_bp.delete("/<int:sale_id>/lines/<int:detail_id>")
def remove_sale_line(sale_id: int, detail_id: int):
    try:
        sale = sales_service.remove_sale_line(sale_id, detail_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"remove line {detail_id} of sale {sale_id}")
    return sale.to_dict()


@sales_bp.get("/<int:sale_id>/stats")
def sale_stats(sale_id: int):
    try:
        return sales_service.sale_detail_stats(sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)


@sales_bp.get("/products/<int:product_id>/stats")
def product_sales_stats(product_id: int):
    try:
        return sales_service.product_sales_stats(product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/confirm")
def confirm_sale(sale_id: int):
    """
    Returns:
        200: Sale confirmed; stock, discount usage and loyalty updated
        400: Not pending, or insufficient stock (nothing is applied)
        404: Sale not found
        409: Discount code exhausted or concurrent modification
    """
    try:
        sale = sales_service.confirm_sale(sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"confirm sale {sale_id}")
    return sale.to_dict()


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale(sale_id: int):
    try:
        sale = sales_service.cancel_sale(sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"cancel sale {sale_id}")
    return sale.to_dict()


@sales_bp.delete("/<int:sale_id>")
def delete_sale(sale_id: int):
    try:
        sale = sales_service.delete_sale(sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"delete sale {sale_id}")
    return sale.to_dict(include_lines=False)


@sales_bp.post("/<int:sale_id>/restore")
def restore_sale(sale_id: int):
    try:
        sale = sales_service.restore_sale(sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error(f"restore sale {sale_id}")
    return sale.to_dict()


register_payment_routes(sales_bp, SALE_KIND)
