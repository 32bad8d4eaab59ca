# Overview: Discount code management and evaluation (scope, window, usage cap, amount).

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import Customer, CustomerCategory, DiscountCode, Product, Sale
from ..models.sales import (
    DISCOUNT_SCOPES,
    DISCOUNT_TYPE_FIXED_AMOUNT,
    DISCOUNT_TYPE_PERCENTAGE,
    DISCOUNT_TYPES,
    SCOPE_CATEGORY,
    SCOPE_CUSTOMER,
    SCOPE_GLOBAL,
    SCOPE_PRODUCT,
)
from ..money import HUNDRED, ZERO, to_money
from ..time_utils import as_naive_utc, utcnow
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_atomically
from .master_data_service import ensure_unique, find_active, find_any

DISCOUNT_CODE_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "description", "discount_type", "value", "scope",
        "customer_category_id", "product_id", "customer_id",
        "min_purchase_amount", "max_discount_amount", "usage_limit",
        "valid_from", "valid_until", "is_active",
    },
    required_on_create={"code", "discount_type", "value", "valid_from", "valid_until"},
)

SCOPE_REFERENCES = {
    SCOPE_CATEGORY: ("customer_category_id", CustomerCategory, "Customer category"),
    SCOPE_PRODUCT: ("product_id", Product, "Product"),
    SCOPE_CUSTOMER: ("customer_id", Customer, "Customer"),
}


@dataclass(frozen=True)
class DiscountValidation:
    is_valid: bool
    discount_amount: Decimal = ZERO
    message: str | None = None
    discount_code: DiscountCode | None = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "discount_amount": str(self.discount_amount),
            "message": self.message,
            "discount_code_id": self.discount_code.id if self.discount_code is not None else None,
        }


def _invalid(message: str) -> DiscountValidation:
    return DiscountValidation(is_valid=False, discount_amount=ZERO, message=message)


# =============================================================================
# NAMED VALIDATORS (shared by create and update)
# =============================================================================

def validate_window(valid_from: datetime, valid_until: datetime, *, creating: bool) -> None:
    if valid_from is None or valid_until is None:
        raise ValidationError("valid_from and valid_until are required")
    if valid_from >= valid_until:
        raise ValidationError("valid_from must be before valid_until")
    if creating and valid_until < utcnow():
        raise ValidationError("valid_until cannot be in the past")


def validate_scope_reference(values: dict) -> None:
    """Non-GLOBAL scopes need their matching reference, pointing at an active row."""
    scope = values.get("scope") or SCOPE_GLOBAL
    if scope not in DISCOUNT_SCOPES:
        raise ValidationError(f"scope must be one of {', '.join(sorted(DISCOUNT_SCOPES))}")
    if scope == SCOPE_GLOBAL:
        return
    field_name, model, label = SCOPE_REFERENCES[scope]
    if values.get(field_name) is None:
        raise ValidationError(f"Scope {scope} requires {field_name}")
    find_active(model, values[field_name], label)


def validate_discount_value(discount_type: str, value) -> None:
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of {', '.join(sorted(DISCOUNT_TYPES))}")
    value = to_money(value, "value")
    if discount_type == DISCOUNT_TYPE_PERCENTAGE and (value <= 0 or value > HUNDRED):
        raise ValidationError("Percentage discount must be greater than 0 and at most 100")
    if discount_type == DISCOUNT_TYPE_FIXED_AMOUNT and value <= 0:
        raise ValidationError("Fixed discount amount must be greater than 0")


def validate_limits(values: dict) -> None:
    for name in ("min_purchase_amount", "max_discount_amount"):
        if values.get(name) is not None and to_money(values[name], name) < 0:
            raise ValidationError(f"{name} must be >= 0")
    if values.get("usage_limit") is not None and values["usage_limit"] <= 0:
        raise ValidationError("usage_limit must be > 0")


def _clear_unused_references(code: DiscountCode) -> None:
    for scope, (field_name, _, _) in SCOPE_REFERENCES.items():
        if code.scope != scope:
            setattr(code, field_name, None)


# =============================================================================
# CRUD
# =============================================================================

def create_discount_code(patch: dict) -> DiscountCode:
    def _op():
        values = dict(patch)
        values.setdefault("scope", SCOPE_GLOBAL)
        ensure_unique(DiscountCode, "code", values.get("code"), label="Discount code")
        validate_window(values.get("valid_from"), values.get("valid_until"), creating=True)
        validate_scope_reference(values)
        validate_discount_value(values.get("discount_type"), values.get("value"))
        validate_limits(values)

        code = DiscountCode(**values)
        code.used_count = 0
        _clear_unused_references(code)
        db.session.add(code)
        db.session.commit()
        return code

    return run_atomically(_op)


def update_discount_code(code_id: int, patch: dict) -> DiscountCode:
    def _op():
        code = _lock_code(code_id)
        if "code" in patch and patch["code"] != code.code:
            ensure_unique(DiscountCode, "code", patch["code"], exclude_id=code.id, label="Discount code")

        merged = {
            name: patch.get(name, getattr(code, name))
            for name in DISCOUNT_CODE_POLICY.writable_fields
        }
        validate_window(merged["valid_from"], merged["valid_until"], creating=False)
        validate_scope_reference(merged)
        validate_discount_value(merged["discount_type"], merged["value"])
        validate_limits(merged)

        for key, value in patch.items():
            setattr(code, key, value)
        _clear_unused_references(code)
        db.session.commit()
        return code

    return run_atomically(_op)


def toggle_discount_code(code_id: int) -> DiscountCode:
    def _op():
        code = _lock_code(code_id)
        code.is_active = not code.is_active
        db.session.commit()
        return code

    return run_atomically(_op)


def delete_discount_code(code_id: int) -> DiscountCode:
    def _op():
        code = _lock_code(code_id)
        in_use = db.session.query(
            Sale.active_query().filter(Sale.discount_code_id == code.id).exists()
        ).scalar()
        if in_use:
            raise ConflictError("Discount code is referenced by sales")
        code.soft_delete()
        db.session.commit()
        return code

    return run_atomically(_op)


def restore_discount_code(code_id: int) -> DiscountCode:
    def _op():
        code = find_any(DiscountCode, code_id, "Discount code")
        if not code.is_deleted:
            raise ConflictError(f"Discount code {code_id} is not deleted")
        code.restore()
        db.session.commit()
        return code

    return run_atomically(_op)


def _lock_code(code_id: int) -> DiscountCode:
    code = lock_for_update(db.session.query(DiscountCode).filter_by(id=code_id)).first()
    if code is None or code.is_deleted:
        raise NotFoundError(f"Discount code {code_id} not found")
    return code


# =============================================================================
# EVALUATION
# =============================================================================

def find_by_code(code: str) -> DiscountCode | None:
    if not code:
        return None
    return DiscountCode.active_query().filter(DiscountCode.code == code).first()


def get_discount_code(code_id: int) -> DiscountCode:
    return find_active(DiscountCode, code_id, "Discount code")


def list_discount_codes(*, active_only: bool = False, now: datetime | None = None) -> list[DiscountCode]:
    query = DiscountCode.active_query()
    if active_only:
        now = as_naive_utc(now) or utcnow()
        query = query.filter(
            DiscountCode.is_active.is_(True),
            DiscountCode.valid_from <= now,
            DiscountCode.valid_until >= now,
        )
    return query.order_by(DiscountCode.valid_from.desc(), DiscountCode.id.desc()).all()


def compute_discount_amount(code: DiscountCode, purchase_amount) -> Decimal:
    """
    PERCENTAGE: amount * value / 100; FIXED_AMOUNT: value.
    Capped at max_discount_amount and at the purchase amount, rounded to 2 dp.
    """
    amount = to_money(purchase_amount)
    if code.discount_type == DISCOUNT_TYPE_PERCENTAGE:
        discount = amount * to_money(code.value) / HUNDRED
    else:
        discount = to_money(code.value)
    if code.max_discount_amount is not None:
        discount = min(discount, to_money(code.max_discount_amount))
    discount = min(discount, amount)
    return to_money(discount)


def _scope_matches(code: DiscountCode, customer_id, product_ids: set) -> str | None:
    """Return a failure message, or None when the scope matches."""
    if code.scope == SCOPE_GLOBAL:
        return None
    if code.scope == SCOPE_CATEGORY:
        if customer_id is None:
            return "A customer is required for this discount code"
        customer = db.session.get(Customer, customer_id)
        if customer is None or customer.is_deleted:
            return "Customer not found"
        if customer.category_id is None or customer.category_id != code.customer_category_id:
            return "Customer does not belong to the required category"
        return None
    if code.scope == SCOPE_PRODUCT:
        if not product_ids:
            return "A product is required for this discount code"
        if code.product_id not in product_ids:
            return "Discount code does not apply to this product"
        return None
    if code.scope == SCOPE_CUSTOMER:
        if customer_id is None:
            return "A customer is required for this discount code"
        if customer_id != code.customer_id:
            return "Discount code does not apply to this customer"
        return None
    return f"Unknown discount scope {code.scope}"


def validate_code(
    code: str,
    *,
    customer_id: int | None = None,
    product_id: int | None = None,
    product_ids=None,
    purchase_amount=0,
    now: datetime | None = None,
) -> DiscountValidation:
    """
    Check, in order: exists, active, inside [valid_from, valid_until],
    usage limit not reached, minimum purchase met, scope matches.

    product_ids lets an order with several lines satisfy a PRODUCT scope
    when any line carries the bound product.
    """
    discount_code = find_by_code(code)
    if discount_code is None:
        return _invalid("Discount code not found")
    if not discount_code.is_active:
        return _invalid("Discount code is inactive")

    now = as_naive_utc(now) or utcnow()
    if now < discount_code.valid_from:
        return _invalid("Discount code is not yet valid")
    if now > discount_code.valid_until:
        return _invalid("Discount code has expired")

    if discount_code.usage_limit is not None and discount_code.used_count >= discount_code.usage_limit:
        return _invalid("Usage limit reached")

    amount = to_money(purchase_amount, "purchase_amount")
    if discount_code.min_purchase_amount is not None and amount < to_money(discount_code.min_purchase_amount):
        return _invalid(f"Minimum purchase amount not reached ({to_money(discount_code.min_purchase_amount)})")

    ids = set(product_ids or ())
    if product_id is not None:
        ids.add(product_id)
    message = _scope_matches(discount_code, customer_id, ids)
    if message:
        return _invalid(message)

    return DiscountValidation(
        is_valid=True,
        discount_amount=compute_discount_amount(discount_code, amount),
        discount_code=discount_code,
    )


def apply_locked(discount_code: DiscountCode) -> DiscountCode:
    """Increment used_count inside the caller's transaction."""
    if discount_code.usage_limit is not None and discount_code.used_count >= discount_code.usage_limit:
        raise ConflictError(f"Discount code {discount_code.code} has reached its usage limit")
    discount_code.used_count = (discount_code.used_count or 0) + 1
    db.session.flush()
    return discount_code


def apply_code(code: str) -> DiscountCode:
    """Record one use of a code."""
    def _op():
        discount_code = lock_for_update(
            db.session.query(DiscountCode).filter(
                DiscountCode.code == code, DiscountCode.deleted_at.is_(None)
            )
        ).first()
        if discount_code is None:
            raise NotFoundError(f"Discount code '{code}' not found")
        apply_locked(discount_code)
        db.session.commit()
        return discount_code

    return run_atomically(_op)


def discount_code_stats(now: datetime | None = None) -> dict:
    now = as_naive_utc(now) or utcnow()
    codes = DiscountCode.active_query().all()
    stats = {
        "total": len(codes),
        "active": 0,
        "expired": 0,
        "deleted": DiscountCode.query.filter(DiscountCode.deleted_at.isnot(None)).count(),
        "by_scope": {scope: 0 for scope in sorted(DISCOUNT_SCOPES)},
        "by_type": {t: 0 for t in sorted(DISCOUNT_TYPES)},
        "total_usage": 0,
    }
    for code in codes:
        stats["total_usage"] += code.used_count or 0
        stats["by_scope"][code.scope] = stats["by_scope"].get(code.scope, 0) + 1
        stats["by_type"][code.discount_type] = stats["by_type"].get(code.discount_type, 0) + 1
        if code.is_active and code.valid_from <= now <= code.valid_until:
            stats["active"] += 1
        elif now > code.valid_until:
            stats["expired"] += 1
    return stats
