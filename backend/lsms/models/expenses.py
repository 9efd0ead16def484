from __future__ import annotations

from ..extensions import db
from lsms.time_utils import to_utc_z


EXPENSE_STATUSES = ("PENDING", "APPROVED", "REJECTED")
EXPENSE_PAYMENT_METHODS = ("CASH", "MPESA", "CARD")


class ExpenseCategory(db.Model):
    __tablename__ = "expense_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }


class Expense(db.Model):
    """
    Operating expense submitted for Owner approval.

    STATUS FLOW:
    PENDING -> APPROVED
    PENDING -> REJECTED
    Terminal states are never left again. approved_by / approved_at record
    whoever made the decision (for both outcomes).
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_expenses_status",
        ),
        db.Index("ix_expenses_status_approved_at", "status", "approved_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("expense_categories.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")

    # Reference to an uploaded receipt (path or URL); storage is external
    receipt_image = db.Column(db.String(512), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    category = db.relationship("ExpenseCategory", backref=db.backref("expenses", lazy="dynamic"))
    submitter = db.relationship("User", foreign_keys=[submitted_by], backref=db.backref("submitted_expenses", lazy="dynamic"))
    approver = db.relationship("User", foreign_keys=[approved_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "payment_method": self.payment_method,
            "receipt_image": self.receipt_image,
            "status": self.status,
            "submitted_by": self.submitted_by,
            "submitted_by_name": self.submitter.name if self.submitter else None,
            "approved_by": self.approved_by,
            "approved_by_name": self.approver.name if self.approver else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
        }
