from __future__ import annotations

from ..extensions import db


class InvoiceSequence(db.Model):
    """
    Per (prefix, year) invoice counter.

    next_number is the number the next allocation will hand out.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "year", name="uq_invoice_sequences_prefix_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
