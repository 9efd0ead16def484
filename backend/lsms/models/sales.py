from __future__ import annotations

from ..extensions import db
from lsms.time_utils import to_utc_z


PAYMENT_METHODS = ("CASH", "MPESA", "CARD")


class Sale(db.Model):
    """
    Completed sale (receipt).

    ARITHMETIC (all amounts in cents):
    - subtotal = SUM(items.subtotal)
    - total = subtotal - discount
    - gross_profit = total - total_cost

    Immutable once created except for the void fields.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("payment_method IN ('CASH', 'MPESA', 'CARD')", name="ck_sales_payment_method"),
        # Closing and dashboard queries filter by day and void flag
        db.Index("ix_sales_voided_created", "is_voided", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt number (e.g., "RCP-20260118-0007")
    receipt_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_reference = db.Column(db.String(128), nullable=True)

    total_cost_cents = db.Column(db.Integer, nullable=False)
    gross_profit_cents = db.Column(db.Integer, nullable=False)

    # Void audit trail
    is_voided = db.Column(db.Boolean, nullable=False, default=False)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("sales", lazy="dynamic"))
    voided_by = db.relationship("User", foreign_keys=[voided_by_user_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def to_dict(self, *, include_items: bool = True, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "is_voided": self.is_voided,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
        }
        if include_cost:
            data["total_cost_cents"] = self.total_cost_cents
            data["gross_profit_cents"] = self.gross_profit_cents
        if include_items:
            data["items"] = [item.to_dict(include_cost=include_cost) for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    product_name, unit_price_cents and unit_cost_cents are point-in-time
    copies taken when the sale was made. Later product edits do not change
    historical receipts.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self, *, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
        if include_cost:
            data["unit_cost_cents"] = self.unit_cost_cents
        return data


class ReceiptSequence(db.Model):
    """
    Atomic per-day receipt counters.

    WHY: Prevent duplicate receipt numbers when two sales are rung up at the
    same time. The counter row is incremented with a single UPDATE inside the
    same DB transaction as the sale insert.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_date = db.Column(db.Date, nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
