from __future__ import annotations

from ..extensions import db
from ..money import money_str, quantity_str
from backoffice.time_utils import to_utc_z
from .base import SoftDeleteMixin


# Purchase status doubles as its settlement status
PURCHASE_STATUS_PENDING = "PENDING"
PURCHASE_STATUS_PARTIALLY_PAID = "PARTIALLY_PAID"
PURCHASE_STATUS_PAID = "PAID"
PURCHASE_STATUS_CANCELLED = "CANCELLED"
PURCHASE_STATUSES = {
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUS_PARTIALLY_PAID,
    PURCHASE_STATUS_PAID,
    PURCHASE_STATUS_CANCELLED,
}

# Shared by purchase and sale payments
PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_CANCELLED = "CANCELLED"
PAYMENT_STATUSES = {PAYMENT_STATUS_PENDING, PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_CANCELLED}


class Supplier(SoftDeleteMixin, db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    nit = db.Column(db.String(32), nullable=False, unique=True)
    contact_name = db.Column(db.String(128), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "nit": self.nit,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class PaymentMethod(SoftDeleteMixin, db.Model):
    """Cash, card, transfer... Used by both purchase and sale payments."""
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    requires_bank_account = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "requires_bank_account": self.requires_bank_account,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Purchase(SoftDeleteMixin, db.Model):
    """
    Purchase order from a supplier.

    Invariant: pending_amount == total - paid_amount, never negative.
    Receiving (stock IN at a branch) is recorded separately from payment.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_status_date", "status", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PURCHASE_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    pending_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    received_branch = db.relationship("Branch")
    details = db.relationship(
        "PurchaseDetail",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseDetail.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "supplier_id": self.supplier_id,
            "date": to_utc_z(self.date),
            "due_date": to_utc_z(self.due_date),
            "status": self.status,
            "notes": self.notes,
            "subtotal": money_str(self.subtotal),
            "tax_amount": money_str(self.tax_amount),
            "discount_amount": money_str(self.discount_amount),
            "total": money_str(self.total),
            "paid_amount": money_str(self.paid_amount),
            "pending_amount": money_str(self.pending_amount),
            "received_at": to_utc_z(self.received_at),
            "received_branch_id": self.received_branch_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
        if include_lines:
            data["details"] = [d.to_dict() for d in self.details]
        return data


class PurchaseDetail(db.Model):
    """One product line on a purchase; amounts come from order_lines.compute_line."""
    __tablename__ = "purchase_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    purchase = db.relationship("Purchase", back_populates="details")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": quantity_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "discount": money_str(self.discount),
            "discount_amount": money_str(self.discount_amount),
            "tax_percentage": money_str(self.tax_percentage),
            "tax_amount": money_str(self.tax_amount),
            "line_total": money_str(self.line_total),
        }


class PurchasePayment(SoftDeleteMixin, db.Model):
    """
    Payment against a purchase. Only COMPLETED payments count toward
    Purchase.paid_amount. Payments are cancelled, never hard-deleted.
    """
    __tablename__ = "purchase_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_purchase_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED, index=True)
    reference_number = db.Column(db.String(128), nullable=True)
    bank_account = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Purchase", backref=db.backref("payments", lazy=True, order_by="PurchasePayment.id"))
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "payment_method_id": self.payment_method_id,
            "amount": money_str(self.amount),
            "date": to_utc_z(self.date),
            "status": self.status,
            "reference_number": self.reference_number,
            "bank_account": self.bank_account,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
