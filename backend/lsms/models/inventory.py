from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from lsms.time_utils import to_utc_z


PRODUCT_STATUSES = ("ACTIVE", "ARCHIVED")
STOCK_MOVEMENT_TYPES = ("PURCHASE", "SALE", "ADJUSTMENT", "RETURN")


class Category(db.Model):
    """Product category (Whiskey, Beer, Wine, ...)."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    current_stock is a denormalized running balance. It is only ever changed
    together with a StockMovement row in the same DB transaction, so
    SUM(stock_movements.quantity) for a product always equals current_stock.
    - Sales decrement via a guarded conditional UPDATE (never below zero)
    - Manual changes go through inventory_service.adjust_stock
    - Product edits never touch current_stock

    ARCHIVING:
    Products are never deleted. status=ARCHIVED hides them from the POS while
    historical SaleItems and StockMovements keep resolving the product.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("status IN ('ACTIVE', 'ARCHIVED')", name="ck_products_status"),
        db.Index("ix_products_status_name", "status", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def is_active(self):
        return self.status == "ACTIVE"

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.current_stock}>"

    def to_dict(self, *, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category": self.category.to_dict() if self.category else None,
            "selling_price_cents": self.selling_price_cents,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "status": self.status,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_cost:
            data["cost_price_cents"] = self.cost_price_cents
        return data


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    Quantity is signed: SALE rows are negative, PURCHASE/RETURN positive,
    ADJUSTMENT either sign. reference_id weakly points at the Sale that
    caused the movement (lookup only, not ownership).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "type IN ('PURCHASE', 'SALE', 'ADJUSTMENT', 'RETURN')",
            name="ck_stock_movements_type",
        ),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    reference_id = db.Column(db.Integer, nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Cost snapshot at the time of the movement
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))
    user = db.relationship("User")

    def to_dict(self, *, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_cost:
            data["unit_cost_cents"] = self.unit_cost_cents
        return data
