from __future__ import annotations

from ..extensions import db
from ..money import money_str, quantity_str
from backoffice.time_utils import to_utc_z
from .base import SoftDeleteMixin
from .purchases import PAYMENT_STATUS_COMPLETED


# Sale lifecycle
SALE_STATUS_PENDING = "PENDING"
SALE_STATUS_CONFIRMED = "CONFIRMED"
SALE_STATUS_CANCELLED = "CANCELLED"
SALE_STATUSES = {SALE_STATUS_PENDING, SALE_STATUS_CONFIRMED, SALE_STATUS_CANCELLED}

# Settlement status (derived from paid vs total)
SETTLEMENT_PENDING = "PENDING"
SETTLEMENT_PARTIALLY_PAID = "PARTIALLY_PAID"
SETTLEMENT_PAID = "PAID"

# Discount codes
DISCOUNT_TYPE_PERCENTAGE = "PERCENTAGE"
DISCOUNT_TYPE_FIXED_AMOUNT = "FIXED_AMOUNT"
DISCOUNT_TYPES = {DISCOUNT_TYPE_PERCENTAGE, DISCOUNT_TYPE_FIXED_AMOUNT}

SCOPE_GLOBAL = "GLOBAL"
SCOPE_CATEGORY = "CATEGORY"
SCOPE_PRODUCT = "PRODUCT"
SCOPE_CUSTOMER = "CUSTOMER"
DISCOUNT_SCOPES = {SCOPE_GLOBAL, SCOPE_CATEGORY, SCOPE_PRODUCT, SCOPE_CUSTOMER}

# Order-level manual discounts
MANUAL_DISCOUNT_PERCENT = "percent"
MANUAL_DISCOUNT_AMOUNT = "amount"


class CustomerCategory(SoftDeleteMixin, db.Model):
    """
    Customer tier. A customer is placed in the active category with the
    highest min_purchase_amount not above their accumulated purchases.
    """
    __tablename__ = "customer_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    min_purchase_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "min_purchase_amount": money_str(self.min_purchase_amount),
            "discount_percentage": money_str(self.discount_percentage),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Customer(SoftDeleteMixin, db.Model):
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    nit = db.Column(db.String(32), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("customer_categories.id"), nullable=True, index=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_purchases = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    category = db.relationship("CustomerCategory", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "nit": self.nit,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "category_id": self.category_id,
            "loyalty_points": self.loyalty_points,
            "total_purchases": money_str(self.total_purchases),
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class DiscountCode(SoftDeleteMixin, db.Model):
    """
    Promotional code. Exactly one scope reference is set for non-GLOBAL
    scopes: customer_category_id (CATEGORY), product_id (PRODUCT) or
    customer_id (CUSTOMER). used_count only ever grows.
    """
    __tablename__ = "discount_codes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    discount_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Numeric(10, 2), nullable=False)
    scope = db.Column(db.String(16), nullable=False, default=SCOPE_GLOBAL)

    customer_category_id = db.Column(db.Integer, db.ForeignKey("customer_categories.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    min_purchase_amount = db.Column(db.Numeric(12, 2), nullable=True)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer_category = db.relationship("CustomerCategory")
    product = db.relationship("Product")
    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "value": money_str(self.value),
            "scope": self.scope,
            "customer_category_id": self.customer_category_id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "min_purchase_amount": money_str(self.min_purchase_amount),
            "max_discount_amount": money_str(self.max_discount_amount),
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Sale(SoftDeleteMixin, db.Model):
    """
    Sale order to a registered customer or a walk-in guest (never both).

    status is the lifecycle (PENDING -> CONFIRMED -> CANCELLED);
    payment_status is the settlement state derived from paid vs total.
    Invariant: pending_amount == total - paid_amount, never negative.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    discount_code_id = db.Column(db.Integer, db.ForeignKey("discount_codes.id"), nullable=True, index=True)

    # Walk-in customer snapshot
    guest_name = db.Column(db.String(255), nullable=True)
    guest_nit = db.Column(db.String(32), nullable=True)
    guest_email = db.Column(db.String(255), nullable=True)
    guest_phone = db.Column(db.String(32), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=SETTLEMENT_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    code_discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    pending_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    branch = db.relationship("Branch")
    discount_code = db.relationship("DiscountCode", backref=db.backref("sales", lazy=True))
    details = db.relationship(
        "SaleDetail",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleDetail.id",
    )
    discounts = db.relationship(
        "SaleDiscount",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleDiscount.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "guest_customer": None,
            "branch_id": self.branch_id,
            "discount_code_id": self.discount_code_id,
            "date": to_utc_z(self.date),
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "subtotal": money_str(self.subtotal),
            "tax_amount": money_str(self.tax_amount),
            "discount_amount": money_str(self.discount_amount),
            "code_discount_amount": money_str(self.code_discount_amount),
            "total": money_str(self.total),
            "paid_amount": money_str(self.paid_amount),
            "pending_amount": money_str(self.pending_amount),
            "loyalty_points_earned": self.loyalty_points_earned,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
        if self.customer_id is None:
            data["guest_customer"] = {
                "name": self.guest_name,
                "nit": self.guest_nit,
                "email": self.guest_email,
                "phone": self.guest_phone,
            }
        if include_lines:
            data["details"] = [d.to_dict() for d in self.details]
            data["discounts"] = [d.to_dict() for d in self.discounts]
        return data


class SaleDetail(db.Model):
    __tablename__ = "sale_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="details")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": quantity_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "discount": money_str(self.discount),
            "discount_amount": money_str(self.discount_amount),
            "tax_percentage": money_str(self.tax_percentage),
            "tax_amount": money_str(self.tax_amount),
            "line_total": money_str(self.line_total),
        }


class SaleDiscount(db.Model):
    """Order-level manual discount (percent of subtotal or flat amount)."""
    __tablename__ = "sale_discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    discount_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Numeric(12, 2), nullable=False)
    amount_applied = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    sale = db.relationship("Sale", back_populates="discounts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "discount_type": self.discount_type,
            "value": money_str(self.value),
            "amount_applied": money_str(self.amount_applied),
            "reason": self.reason,
        }


class SalePayment(SoftDeleteMixin, db.Model):
    """Payment against a confirmed sale; mirrors PurchasePayment."""
    __tablename__ = "sale_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_sale_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED, index=True)
    reference_number = db.Column(db.String(128), nullable=True)
    bank_account = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="SalePayment.id"))
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method_id": self.payment_method_id,
            "amount": money_str(self.amount),
            "date": to_utc_z(self.date),
            "status": self.status,
            "reference_number": self.reference_number,
            "bank_account": self.bank_account,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
