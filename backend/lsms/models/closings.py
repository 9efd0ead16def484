from __future__ import annotations

from ..extensions import db
from lsms.time_utils import to_utc_z


CLOSING_STATUSES = ("APPROVED", "DISCREPANCY")


class DailyClosing(db.Model):
    """
    End-of-day cash reconciliation.

    WHY: Detect cash shortages. Expected figures are computed server-side from
    the day's non-voided sales; declared figures are what the seller counted.

    VARIANCE:
    - cash_variance = declared_cash - expected_cash (negative = short)
    - total_variance = cash_variance (M-Pesa and card are recorded, not reconciled)

    One row per business day. The unique constraint on business_date is the
    backstop against two concurrent submissions.
    """
    __tablename__ = "daily_closings"
    __table_args__ = (
        db.CheckConstraint("status IN ('APPROVED', 'DISCREPANCY')", name="ck_daily_closings_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_date = db.Column(db.Date, nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    expected_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_mpesa_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_card_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_total_cents = db.Column(db.Integer, nullable=False, default=0)

    declared_cash_cents = db.Column(db.Integer, nullable=False)
    declared_mpesa_cents = db.Column(db.Integer, nullable=True)
    declared_card_cents = db.Column(db.Integer, nullable=True)

    cash_variance_cents = db.Column(db.Integer, nullable=False)
    total_variance_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "expected_cash_cents": self.expected_cash_cents,
            "expected_mpesa_cents": self.expected_mpesa_cents,
            "expected_card_cents": self.expected_card_cents,
            "expected_total_cents": self.expected_total_cents,
            "declared_cash_cents": self.declared_cash_cents,
            "declared_mpesa_cents": self.declared_mpesa_cents,
            "declared_card_cents": self.declared_card_cents,
            "cash_variance_cents": self.cash_variance_cents,
            "total_variance_cents": self.total_variance_cents,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
