# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

# backend/lsms/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS permission
- Write operations require MANAGE_PRODUCTS permission
- cost_price_cents is only serialized for roles with VIEW_PROFIT
"""
from flask import Blueprint, request, g, current_app
from ..services import products_service
from ..services.products_service import ProductNotFoundError
from ..models import Product
from ..permissions import has_permission
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category_id",
        "cost_price_cents", "selling_price_cents", "reorder_level", "current_stock",
    },
    required_on_create={"sku", "name", "cost_price_cents", "selling_price_cents"},
)

# No current_stock here: stock only changes through movements
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category_id",
        "cost_price_cents", "selling_price_cents", "reorder_level",
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _can_see_cost() -> bool:
    return has_permission(g.session_context.role, "VIEW_PROFIT")


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes")


@products_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    List products.

    Query params:
    - search: str - matches name, SKU or barcode
    - category_id: int
    - low_stock: bool - only current_stock <= reorder_level
    - include_inactive: bool - include archived products (MANAGE_PRODUCTS only)
    - page / per_page: int (optional) - paginate; omitted returns all
    """
    include_inactive = _flag("include_inactive") and has_permission(g.session_context.role, "MANAGE_PRODUCTS")

    result = products_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        low_stock=_flag("low_stock"),
        include_inactive=include_inactive,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        include_cost=_can_see_cost(),
    )
    return result


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except ProductNotFoundError as e:
        return {"error": str(e)}, 404
    return product.to_dict(include_cost=_can_see_cost()), 200


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a new product.

    An opening current_stock is booked as an "Initial stock" PURCHASE movement.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch, actor_id=g.session_context.user_id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    """Update product master data (never stock)."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(
            product_id=product_id, patch=patch, actor_id=g.session_context.user_id
        )
    except ProductNotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """Archive a product (soft delete)."""
    try:
        archived = products_service.archive_product(product_id=product_id, actor_id=g.session_context.user_id)
    except ProductNotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return {"error": "Internal server error"}, 500

    return {"ok": True, "product": archived.to_dict()}, 200


@categories_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_categories_route():
    return {"categories": products_service.list_categories()}, 200


@categories_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    try:
        category = products_service.create_category(
            name=payload.get("name"),
            description=payload.get("description"),
        )
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    return category.to_dict(), 201
