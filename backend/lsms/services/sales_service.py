"""
Sales Service - single-shot sale processing

WHY: A liquor-store counter sale is entered and paid in one step. The whole
sale (receipt number, header, line snapshots, stock decrements and SALE
movements) is written in ONE database transaction: either every effect is
visible or none is.

Concurrency:
- Receipt numbers come from a per-day counter row incremented atomically
  inside the sale transaction.
- Stock is decremented with a guarded conditional UPDATE, so concurrent
  sales can never oversell the last unit.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, ReceiptSequence, Sale, SaleItem
from ..models.sales import PAYMENT_METHODS
from ..validation import ConflictError, ValidationError, coerce_int
from lsms.time_utils import business_date, day_bounds_utc, utcnow
from . import audit_service
from .concurrency import RetryableConflict, lock_for_update, run_with_retry
from .inventory_service import InventoryError, decrement_stock_for_sale, restock_inner


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleNotFoundError(SaleError):
    pass


def _tz() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def format_receipt_number(day: date, number: int) -> str:
    return f"RCP-{day.strftime('%Y%m%d')}-{number:04d}"


def next_receipt_number(day: date) -> str:
    """
    Allocate the next receipt number for a business day.

    Must run inside the caller's transaction (no commit here). The first sale
    of a day seeds the counter from the number of sales already recorded for
    that day, so numbering continues correctly on databases that predate the
    counter table. A concurrent seed of the same day raises RetryableConflict
    and the whole sale is replayed.
    """
    stmt = (
        update(ReceiptSequence)
        .where(ReceiptSequence.business_date == day)
        .values(next_number=ReceiptSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(ReceiptSequence.next_number)
            .filter_by(business_date=day)
            .scalar()
        )
        return format_receipt_number(day, current - 1)

    start, end = day_bounds_utc(day, _tz())
    existing = db.session.query(func.count(Sale.id)).filter(
        Sale.created_at >= start,
        Sale.created_at < end,
    ).scalar() or 0
    number = int(existing) + 1

    db.session.add(ReceiptSequence(business_date=day, next_number=number + 1))
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise RetryableConflict("Receipt counter seeded concurrently") from exc

    return format_receipt_number(day, number)


def _normalize_cart(items) -> list[tuple[int, int]]:
    """
    Validate cart lines and merge duplicates.

    Returns [(product_id, quantity)] in first-seen order.
    """
    if not isinstance(items, list) or not items:
        raise SaleError("No items in sale")

    merged: dict[int, int] = {}
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise SaleError(f"Item {idx + 1} is invalid")
        if "product_id" not in item or item.get("product_id") is None:
            raise SaleError(f"Item {idx + 1}: product_id is required")
        if "quantity" not in item or item.get("quantity") is None:
            raise SaleError(f"Item {idx + 1}: quantity is required")
        try:
            product_id = coerce_int(item["product_id"], "product_id")
            quantity = coerce_int(item["quantity"], "quantity")
        except ValidationError as e:
            raise SaleError(f"Item {idx + 1}: {e}")
        if quantity <= 0:
            raise SaleError(f"Item {idx + 1}: quantity must be a positive integer")
        merged[product_id] = merged.get(product_id, 0) + quantity

    return list(merged.items())


def create_sale(
    *,
    items,
    payment_method: str,
    actor_id: int,
    discount_cents=0,
    payment_reference: str | None = None,
) -> Sale:
    """
    Record a completed sale.

    Validation happens before any side effect:
    - non-empty cart, integer product_id, integer quantity > 0
    - payment_method in CASH / MPESA / CARD
    - discount_cents integer >= 0
    - every product exists and is active
    - every quantity fits the current stock
    - total >= 0 unless ALLOW_NEGATIVE_SALE_TOTAL

    Arithmetic (cents):
        line subtotal = selling price * qty
        subtotal      = SUM(line subtotals)
        total         = subtotal - discount
        total cost    = SUM(cost price * qty)
        gross profit  = total - total cost

    Raises SaleError (400) on any rejection; nothing is persisted.
    """
    lines = _normalize_cart(items)

    method = (payment_method or "").strip().upper() if isinstance(payment_method, str) else None
    if method not in PAYMENT_METHODS:
        raise SaleError("Invalid payment method", details={"allowed": list(PAYMENT_METHODS)})

    if discount_cents is None:
        discount_cents = 0
    try:
        discount_cents = coerce_int(discount_cents, "discount_cents")
    except ValidationError as e:
        raise SaleError(str(e))
    if discount_cents < 0:
        raise SaleError("discount_cents must be >= 0")

    if payment_reference is not None:
        payment_reference = str(payment_reference).strip()[:128] or None

    allow_negative = bool(current_app.config.get("ALLOW_NEGATIVE_SALE_TOTAL", False))
    product_ids = [pid for pid, _ in lines]

    def _op():
        try:
            products = (
                db.session.query(Product)
                .filter(Product.id.in_(product_ids), Product.is_active)
                .all()
            )
            by_id = {p.id: p for p in products}

            missing = [pid for pid in product_ids if pid not in by_id]
            if missing:
                raise SaleError(
                    "Some products not found or inactive",
                    details={"missing_product_ids": missing},
                )

            for pid, qty in lines:
                product = by_id[pid]
                if product.current_stock < qty:
                    raise SaleError(
                        f"Insufficient stock for {product.name}. Available: {product.current_stock}",
                        details={
                            "product_id": pid,
                            "requested_quantity": qty,
                            "available": product.current_stock,
                        },
                    )

            subtotal = 0
            total_cost = 0
            snapshots = []
            for pid, qty in lines:
                product = by_id[pid]
                line_subtotal = product.selling_price_cents * qty
                subtotal += line_subtotal
                total_cost += product.cost_price_cents * qty
                snapshots.append((product, qty, line_subtotal))

            total = subtotal - discount_cents
            if total < 0 and not allow_negative:
                raise SaleError(
                    "Discount cannot exceed the sale subtotal",
                    details={"subtotal_cents": subtotal, "discount_cents": discount_cents},
                )

            now = utcnow()
            receipt_number = next_receipt_number(business_date(now, _tz()))

            sale = Sale(
                receipt_number=receipt_number,
                user_id=actor_id,
                subtotal_cents=subtotal,
                discount_cents=discount_cents,
                total_cents=total,
                payment_method=method,
                payment_reference=payment_reference,
                total_cost_cents=total_cost,
                gross_profit_cents=total - total_cost,
                is_voided=False,
                created_at=now,
            )
            for product, qty, line_subtotal in snapshots:
                sale.items.append(
                    SaleItem(
                        product_id=product.id,
                        product_name=product.name,
                        quantity=qty,
                        unit_price_cents=product.selling_price_cents,
                        unit_cost_cents=product.cost_price_cents,
                        subtotal_cents=line_subtotal,
                    )
                )
            db.session.add(sale)
            db.session.flush()

            for product, qty, _ in snapshots:
                try:
                    decrement_stock_for_sale(
                        product_id=product.id,
                        quantity=qty,
                        sale_id=sale.id,
                        receipt_number=receipt_number,
                        unit_cost_cents=product.cost_price_cents,
                        user_id=actor_id,
                    )
                except InventoryError:
                    db.session.refresh(product)
                    raise SaleError(
                        f"Insufficient stock for {product.name}. Available: {product.current_stock}",
                        details={
                            "product_id": product.id,
                            "requested_quantity": qty,
                            "available": product.current_stock,
                        },
                    )

            db.session.commit()
            return sale
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise SaleNotFoundError("Sale not found")
    return sale


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
    include_voided: bool = False,
    include_cost: bool = True,
) -> dict:
    """Newest first, paginated. start/end are UTC-naive and inclusive."""
    query = db.session.query(Sale)
    if not include_voided:
        query = query.filter(Sale.is_voided.is_(False))
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)

    page = max(int(page or 1), 1)
    limit = max(1, min(int(limit or 50), 200))

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "sales": [s.to_dict(include_cost=include_cost) for s in sales],
        "total": total,
        "page": page,
        "limit": limit,
    }


def void_sale(*, sale_id: int, actor_id: int, reason: str) -> Sale:
    """
    Void a completed sale and put its items back on the shelf.

    Each line is restocked with a RETURN movement referencing the sale, so
    the movement ledger still sums to current_stock. Voided sales are
    excluded from closings, dashboards and reports.
    """
    reason = (reason or "").strip()
    if not reason:
        raise SaleError("A void reason is required")

    def _op():
        try:
            sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
            if not sale:
                raise SaleNotFoundError("Sale not found")

            if sale.is_voided:
                raise ConflictError("Sale already voided")

            for item in sale.items:
                product = lock_for_update(
                    db.session.query(Product).filter_by(id=item.product_id)
                ).first()
                restock_inner(
                    product=product,
                    quantity=item.quantity,
                    reason=f"Void {sale.receipt_number}",
                    user_id=actor_id,
                    reference_id=sale.id,
                    unit_cost_cents=item.unit_cost_cents,
                )

            sale.is_voided = True
            sale.voided_by_user_id = actor_id
            sale.voided_at = utcnow()
            sale.void_reason = reason[:255]

            audit_service.append_audit(
                user_id=actor_id,
                action="SALE_VOID",
                entity_type="Sale",
                entity_id=sale.id,
                description=f"Voided sale {sale.receipt_number}: {reason}",
                old_value={"is_voided": False, "total_cents": sale.total_cents},
                new_value={"is_voided": True, "void_reason": sale.void_reason},
            )

            db.session.commit()
            return sale
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)
