from __future__ import annotations

from ..extensions import db
from ..money import money_str, quantity_str
from backoffice.time_utils import to_utc_z
from .base import SoftDeleteMixin


# Movement types
MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TYPES = {
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_ADJUSTMENT,
}
INBOUND_TYPES = {MOVEMENT_IN, MOVEMENT_TRANSFER_IN, MOVEMENT_ADJUSTMENT}
OUTBOUND_TYPES = {MOVEMENT_OUT, MOVEMENT_TRANSFER_OUT}
TRANSFER_TYPES = {MOVEMENT_TRANSFER_OUT, MOVEMENT_TRANSFER_IN}

# Movement statuses
MOVEMENT_STATUS_PENDING = "PENDING"
MOVEMENT_STATUS_COMPLETED = "COMPLETED"
MOVEMENT_STATUS_CANCELLED = "CANCELLED"
MOVEMENT_STATUSES = {MOVEMENT_STATUS_PENDING, MOVEMENT_STATUS_COMPLETED, MOVEMENT_STATUS_CANCELLED}


class Inventory(SoftDeleteMixin, db.Model):
    """
    Materialized stock level for one (product, branch) pair.

    Mutated only by the stock ledger when a movement completes. Rows are
    created lazily with stock=0 on the first completed movement.

    CONCURRENCY: version_id is an optimistic lock; the ledger additionally
    reads the row with SELECT ... FOR UPDATE where the database honors it.
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_inventories_product_branch"),
        db.CheckConstraint("stock >= 0", name="ck_inventories_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    stock = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    min_stock = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    max_stock = db.Column(db.Numeric(12, 3), nullable=True)
    last_movement_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    branch = db.relationship("Branch", backref=db.backref("inventories", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "stock": quantity_str(self.stock),
            "min_stock": quantity_str(self.min_stock),
            "max_stock": quantity_str(self.max_stock),
            "last_movement_date": to_utc_z(self.last_movement_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class InventoryMovement(SoftDeleteMixin, db.Model):
    """
    Append-only stock movement.

    Only the PENDING -> COMPLETED transition touches stock. A COMPLETED
    movement is never reversed in place; undo it with a compensating movement.
    Transfer pairs (TRANSFER_OUT + TRANSFER_IN) share reference_id.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_movements_quantity_positive"),
        db.Index("ix_inventory_movements_product_branch", "product_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventories.id"), nullable=True, index=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=MOVEMENT_STATUS_PENDING, index=True)

    # Groups the two legs of a transfer
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    source_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    target_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")
    branch = db.relationship("Branch", foreign_keys=[branch_id])
    source_branch = db.relationship("Branch", foreign_keys=[source_branch_id])
    target_branch = db.relationship("Branch", foreign_keys=[target_branch_id])
    inventory = db.relationship("Inventory", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "inventory_id": self.inventory_id,
            "quantity": quantity_str(self.quantity),
            "movement_type": self.movement_type,
            "status": self.status,
            "reference_id": self.reference_id,
            "source_branch_id": self.source_branch_id,
            "target_branch_id": self.target_branch_id,
            "unit_cost": money_str(self.unit_cost),
            "total_cost": money_str(self.total_cost),
            "movement_date": to_utc_z(self.movement_date),
            "completed_at": to_utc_z(self.completed_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
