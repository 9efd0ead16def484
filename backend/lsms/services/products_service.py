# backend/lsms/services/products_service.py
"""
Products Service

Product master data and categories. Stock levels are NOT edited here:
create_product may book an opening balance (PURCHASE movement), after that
only sales and inventory adjustments move current_stock.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, StockMovement
from ..validation import ConflictError, ValidationError
from lsms.time_utils import utcnow
from . import audit_service, settings_service
from .concurrency import run_with_retry

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "barcode",
    "name",
    "description",
    "category_id",
    "cost_price_cents",
    "selling_price_cents",
    "reorder_level",
}


class ProductNotFoundError(ValueError):
    pass


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if not db.session.query(Category.id).filter_by(id=category_id).first():
        raise ValidationError("Category not found")


def _check_unique(*, sku: str | None, barcode: str | None, exclude_id: int | None = None) -> None:
    if sku:
        q = db.session.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError("SKU already exists")
    if barcode:
        q = db.session.query(Product.id).filter(Product.barcode == barcode)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError("Barcode already exists")


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
    include_cost: bool = True,
) -> dict:
    """
    Product listing with filters and optional pagination.

    - search matches name, SKU or barcode (case-insensitive substring)
    - low_stock keeps products with current_stock <= reorder_level
    - archived products are hidden unless include_inactive
    - page=None returns every match
    """
    query = db.session.query(Product)

    if not include_inactive:
        query = query.filter(Product.is_active)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                Product.barcode.ilike(pattern),
            )
        )

    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    if low_stock:
        query = query.filter(Product.current_stock <= Product.reorder_level)

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {
            "items": [p.to_dict(include_cost=include_cost) for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict(include_cost=include_cost) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def create_product(*, patch: dict, actor_id: int) -> Product:
    """
    Create product using a validated patch dict.

    An opening current_stock > 0 is booked as a PURCHASE movement
    ("Initial stock") in the same transaction, so the movement ledger sums
    to the stock level from the first moment.

    Raises:
        ConflictError: duplicate SKU or barcode
        ValidationError: unknown category
    """
    patch = dict(patch)
    initial_stock = patch.pop("current_stock", None) or 0

    if not patch.get("sku"):
        raise ValidationError("sku is required")

    def _op():
        try:
            _check_category(patch.get("category_id"))
            _check_unique(sku=patch.get("sku"), barcode=patch.get("barcode"))

            p = Product(status="ACTIVE", current_stock=initial_stock)
            if patch.get("reorder_level") is None:
                patch["reorder_level"] = settings_service.get_int_setting(
                    "default_reorder_level",
                    current_app.config.get("DEFAULT_REORDER_LEVEL", 10),
                )
            apply_product_patch(p, patch)

            db.session.add(p)
            db.session.flush()

            if initial_stock > 0:
                db.session.add(
                    StockMovement(
                        product_id=p.id,
                        type="PURCHASE",
                        quantity=initial_stock,
                        reason="Initial stock",
                        user_id=actor_id,
                        unit_cost_cents=p.cost_price_cents,
                        created_at=utcnow(),
                    )
                )

            db.session.commit()
            return p
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("SKU or barcode already exists")
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def update_product(*, product_id: int, patch: dict, actor_id: int) -> Product:
    """
    Update product master data. current_stock is never writable here.

    Writes PRODUCT_UPDATE to the audit log with old/new values of the
    changed fields.
    """
    if "current_stock" in patch:
        raise ValidationError("current_stock cannot be edited; use an inventory adjustment")

    def _op():
        try:
            p = db.session.query(Product).filter_by(id=product_id).first()
            if not p:
                raise ProductNotFoundError("Product not found")

            if "category_id" in patch:
                _check_category(patch["category_id"])
            _check_unique(
                sku=patch.get("sku") if patch.get("sku") != p.sku else None,
                barcode=patch.get("barcode") if patch.get("barcode") != p.barcode else None,
                exclude_id=p.id,
            )

            changed = {k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS and getattr(p, k) != v}
            if not changed:
                return p

            old_value = {k: getattr(p, k) for k in changed}
            apply_product_patch(p, changed)
            db.session.flush()

            audit_service.append_audit(
                user_id=actor_id,
                action="PRODUCT_UPDATE",
                entity_type="Product",
                entity_id=p.id,
                description=f"Updated product {p.name}",
                old_value=old_value,
                new_value=changed,
            )
            db.session.commit()
            return p
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("SKU or barcode already exists")
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def archive_product(*, product_id: int, actor_id: int) -> Product:
    """Soft delete: status -> ARCHIVED. History keeps pointing at the row."""
    def _op():
        try:
            p = db.session.query(Product).filter_by(id=product_id).first()
            if not p:
                raise ProductNotFoundError("Product not found")
            if p.status == "ARCHIVED":
                return p

            p.status = "ARCHIVED"
            db.session.flush()

            audit_service.append_audit(
                user_id=actor_id,
                action="PRODUCT_ARCHIVE",
                entity_type="Product",
                entity_id=p.id,
                description=f"Archived product {p.name}",
                old_value={"status": "ACTIVE"},
                new_value={"status": "ARCHIVED"},
            )
            db.session.commit()
            return p
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def list_categories() -> list[dict]:
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.is_active)
        .group_by(Product.category_id)
        .all()
    )
    categories = db.session.query(Category).order_by(Category.name.asc()).all()
    result = []
    for c in categories:
        data = c.to_dict()
        data["product_count"] = int(counts.get(c.id, 0))
        result.append(data)
    return result


def create_category(*, name: str, description: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120")

    if db.session.query(Category.id).filter(func.lower(Category.name) == name.lower()).first():
        raise ConflictError("Category already exists")

    category = Category(name=name, description=(description or "").strip() or None)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category
