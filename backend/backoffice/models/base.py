from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import utcnow


class SoftDeleteMixin:
    """
    Nullable deleted_at timestamp; "deleted" rows are hidden from active_query()
    but remain restorable.
    """
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @classmethod
    def active_query(cls):
        return cls.query.filter(cls.deleted_at.is_(None))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()

    def restore(self) -> None:
        self.deleted_at = None
