# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/lsms/services/inventory_service.py

from datetime import datetime

from sqlalchemy import func, update

from ..extensions import db
from ..models import Product, StockMovement
from ..validation import coerce_int, enforce_rules_inventory_adjust
from lsms.time_utils import utcnow
from .audit_service import append_audit
from .concurrency import lock_for_update, run_with_retry
"""
LSMS Inventory Invariants (authoritative)

Stock model:
- Product.current_stock is the running balance used at the counter.
- Every change to current_stock is accompanied, in the same DB transaction,
  by exactly one StockMovement whose signed quantity equals the change.
- Therefore SUM(StockMovement.quantity) == current_stock for every product.

Business invariants:
- current_stock never goes negative (guarded UPDATE + CHECK constraint).
- PURCHASE and RETURN movements are positive; SALE movements are negative;
  ADJUSTMENT may be either sign but never zero.
- Manual adjustments always carry a reason and an audit entry.
"""


class InventoryError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFoundError(InventoryError):
    pass


def stock_on_hand_from_movements(product_id: int, as_of: datetime | None = None) -> int:
    """
    Quantity on hand derived from the movement ledger (optionally as-of, inclusive).
    """
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(
        StockMovement.product_id == product_id,
    )
    if as_of is not None:
        q = q.filter(StockMovement.created_at <= as_of)

    return int(q.scalar() or 0)


def decrement_stock_for_sale(
    *,
    product_id: int,
    quantity: int,
    sale_id: int,
    receipt_number: str,
    unit_cost_cents: int,
    user_id: int,
) -> StockMovement:
    """
    Core SALE logic without retry or commit.

    The decrement is a single conditional UPDATE:
        current_stock = current_stock - q  WHERE id = ? AND current_stock >= q
    so two concurrent sales can never both take the last unit. If the
    condition fails nothing is written and InventoryError is raised; the
    caller rolls back the whole sale.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.current_stock >= quantity)
        .values(
            current_stock=Product.current_stock - quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise InventoryError(
            "Insufficient stock",
            details={"product_id": product_id, "requested": quantity},
        )

    movement = StockMovement(
        product_id=product_id,
        type="SALE",
        quantity=-quantity,
        reason=f"Sale {receipt_number}",
        reference_id=sale_id,
        user_id=user_id,
        unit_cost_cents=unit_cost_cents,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def restock_inner(
    *,
    product: Product,
    quantity: int,
    reason: str,
    user_id: int,
    reference_id: int | None = None,
    unit_cost_cents: int | None = None,
) -> StockMovement:
    """Core RETURN logic without retry or commit (used by sale voids)."""
    product.current_stock = product.current_stock + quantity
    movement = StockMovement(
        product_id=product.id,
        type="RETURN",
        quantity=quantity,
        reason=reason,
        reference_id=reference_id,
        user_id=user_id,
        unit_cost_cents=unit_cost_cents if unit_cost_cents is not None else product.cost_price_cents,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    *,
    product_id: int,
    type: str,
    quantity: int,
    reason: str,
    actor_id: int,
) -> dict:
    """
    Manual stock change (Owner).

    Locks the product row, applies the signed delta, records the movement and
    a STOCK_ADJUSTMENT audit entry with old/new stock, all in one transaction.
    Product.version_id turns a concurrent edit into a StaleDataError, which
    run_with_retry replays against fresh state.

    Returns {"product": ..., "movement": ...}.
    """
    if quantity is not None:
        quantity = coerce_int(quantity, "quantity")
    patch = {"type": (type or "").strip().upper(), "quantity": quantity, "reason": (reason or "").strip()}
    enforce_rules_inventory_adjust(patch)

    def _op():
        try:
            product = lock_for_update(
                db.session.query(Product).filter(Product.id == product_id)
            ).first()
            if not product:
                raise ProductNotFoundError("Product not found")

            old_stock = product.current_stock
            new_stock = old_stock + patch["quantity"]
            if new_stock < 0:
                raise InventoryError(
                    "Insufficient stock for this adjustment",
                    details={"current_stock": old_stock, "quantity": patch["quantity"]},
                )

            product.current_stock = new_stock

            movement = StockMovement(
                product_id=product.id,
                type=patch["type"],
                quantity=patch["quantity"],
                reason=patch["reason"],
                user_id=actor_id,
                unit_cost_cents=product.cost_price_cents,
                created_at=utcnow(),
            )
            db.session.add(movement)
            db.session.flush()

            append_audit(
                user_id=actor_id,
                action="STOCK_ADJUSTMENT",
                entity_type="Product",
                entity_id=product.id,
                description=f"{patch['type']}: {patch['quantity']:+d} {product.name} ({patch['reason']})",
                old_value={"stock": old_stock},
                new_value={"stock": new_stock},
            )

            db.session.commit()
            return {"product": product.to_dict(), "movement": movement.to_dict()}
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def list_movements(
    *,
    product_id: int | None = None,
    type: str | None = None,
    limit: int = 50,
    include_cost: bool = True,
) -> list[dict]:
    """Newest first, with product and user names."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if type:
        q = q.filter(StockMovement.type == type.strip().upper())

    limit = max(1, min(int(limit or 50), 500))
    rows = q.order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    ).limit(limit).all()
    return [r.to_dict(include_cost=include_cost) for r in rows]
