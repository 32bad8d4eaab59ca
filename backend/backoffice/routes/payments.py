# Overview: Payment routes shared by purchases and sales, attached to each order blueprint.

# backend/backoffice/routes/payments.py
"""
Payment endpoints, registered once per order kind:

    POST   <prefix>/<order_id>/payments
    GET    <prefix>/<order_id>/payments
    GET    <prefix>/payments                       ?counterparty_id=&payment_method_id=&status=&start=&end=
    GET    <prefix>/payments/stats
    GET    <prefix>/payments/daily                 ?date=YYYY-MM-DD
    GET    <prefix>/payments/<payment_id>
    PUT    <prefix>/payments/<payment_id>
    POST   <prefix>/payments/<payment_id>/complete
    POST   <prefix>/payments/<payment_id>/cancel
    DELETE <prefix>/payments/<payment_id>          always 400; cancel instead
"""
from flask import Blueprint, request

from ..models.purchases import PAYMENT_STATUS_COMPLETED
from ..services import payment_service
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

PAYMENT_FIELDS = {"amount", "payment_method_id", "date", "reference_number", "bank_account", "notes", "status"}


def _check_fields(payload: dict, allowed: set) -> None:
    unknown = set(payload) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")


def register_payment_routes(bp: Blueprint, kind: payment_service.OrderKind) -> None:
    label = kind.name

    def add_payment(order_id: int):
        """
        Request body:
        {
            "amount": "50.00",
            "payment_method_id": int,
            "date": ISO-8601 (optional),
            "reference_number" / "bank_account" / "notes": str (optional),
            "status": "COMPLETED" | "PENDING" (optional, default COMPLETED)
        }
        """
        payload = request.get_json(silent=True) or {}
        try:
            _check_fields(payload, PAYMENT_FIELDS)
            if payload.get("amount") is None:
                raise ValidationError("Missing required field: amount")
            payment = payment_service.apply_payment(
                kind,
                order_id,
                amount=payload["amount"],
                payment_method_id=require_int(payload, "payment_method_id"),
                date=parse_datetime_field(payload, "date"),
                reference_number=payload.get("reference_number"),
                bank_account=payload.get("bank_account"),
                notes=payload.get("notes"),
                status=payload.get("status") or PAYMENT_STATUS_COMPLETED,
            )
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"add payment to {label} {order_id}")
        return payment.to_dict(), 201

    def list_order_payments(order_id: int):
        payments = payment_service.list_payments(kind, order_id=order_id)
        return {"items": [p.to_dict() for p in payments], "count": len(payments)}

    def list_payments():
        try:
            payments = payment_service.list_payments(
                kind,
                counterparty_id=request.args.get("counterparty_id", type=int),
                payment_method_id=request.args.get("payment_method_id", type=int),
                status=request.args.get("status"),
                start=parse_datetime_field(request.args, "start"),
                end=parse_datetime_field(request.args, "end"),
            )
        except DOMAIN_ERRORS as e:
            return error_response(e)
        return {"items": [p.to_dict() for p in payments], "count": len(payments)}

    def payment_stats():
        return payment_service.payment_stats(kind)

    def daily_payments():
        try:
            summary = payment_service.daily_payments(kind, parse_date_arg(request.args.get("date"), "date"))
        except DOMAIN_ERRORS as e:
            return error_response(e)
        summary["payments"] = [p.to_dict() for p in summary["payments"]]
        return summary

    def get_payment(payment_id: int):
        try:
            payment = payment_service.get_payment(kind, payment_id)
        except DOMAIN_ERRORS as e:
            return error_response(e)
        return payment.to_dict()

    def update_payment(payment_id: int):
        payload = request.get_json(silent=True) or {}
        try:
            _check_fields(payload, PAYMENT_FIELDS - {"status"})
            payment = payment_service.update_payment(
                kind,
                payment_id,
                amount=payload.get("amount"),
                payment_method_id=optional_int(payload, "payment_method_id"),
                date=parse_datetime_field(payload, "date"),
                reference_number=payload.get("reference_number"),
                bank_account=payload.get("bank_account"),
                notes=payload.get("notes"),
            )
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"update {label} payment {payment_id}")
        return payment.to_dict()

    def complete_payment(payment_id: int):
        try:
            payment = payment_service.complete_payment(kind, payment_id)
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"complete {label} payment {payment_id}")
        return payment.to_dict()

    def cancel_payment(payment_id: int):
        try:
            payment = payment_service.cancel_payment(kind, payment_id)
        except DOMAIN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"cancel {label} payment {payment_id}")
        return payment.to_dict()

    def delete_payment(payment_id: int):
        try:
            payment_service.delete_payment(kind, payment_id)
        except DOMAIN_ERRORS as e:
            return error_response(e)
        return {"error": "Payments cannot be deleted"}, 400

    bp.add_url_rule("/<int:order_id>/payments", "add_payment", add_payment, methods=["POST"])
    bp.add_url_rule("/<int:order_id>/payments", "list_order_payments", list_order_payments, methods=["GET"])
    bp.add_url_rule("/payments", "list_payments", list_payments, methods=["GET"])
    bp.add_url_rule("/payments/stats", "payment_stats", payment_stats, methods=["GET"])
    bp.add_url_rule("/payments/daily", "daily_payments", daily_payments, methods=["GET"])
    bp.add_url_rule("/payments/<int:payment_id>", "get_payment", get_payment, methods=["GET"])
    bp.add_url_rule("/payments/<int:payment_id>", "update_payment", update_payment, methods=["PUT"])
    bp.add_url_rule("/payments/<int:payment_id>/complete", "complete_payment", complete_payment, methods=["POST"])
    bp.add_url_rule("/payments/<int:payment_id>/cancel", "cancel_payment", cancel_payment, methods=["POST"])
    bp.add_url_rule("/payments/<int:payment_id>", "delete_payment", delete_payment, methods=["DELETE"])
