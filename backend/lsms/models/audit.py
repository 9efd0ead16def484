from __future__ import annotations

import json

from ..extensions import db
from lsms.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only record of sensitive actions.

    WHY: Owners need to see who changed stock, prices, expenses, users and
    settings, and what the values were before and after.

    IMMUTABLE: Never update or delete. old_value / new_value hold JSON text.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_logs_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # e.g. STOCK_ADJUSTMENT, EXPENSE_APPROVE, DAILY_CLOSING, SALE_VOID
    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)

    description = db.Column(db.Text, nullable=True)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    @staticmethod
    def _decode(raw):
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "old_value": self._decode(self.old_value),
            "new_value": self._decode(self.new_value),
            "created_at": to_utc_z(self.created_at),
        }
