# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/lsms/routes/inventory.py
from flask import Blueprint, request, jsonify, g, current_app

from ..services import inventory_service
from ..services.inventory_service import InventoryError, ProductNotFoundError
from ..validation import ValidationError
from ..permissions import has_permission
from ..decorators import require_auth, require_permission

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_stock_route():
    """
    Record a manual stock change.

    Request body:
    - product_id: int
    - type: PURCHASE | ADJUSTMENT | RETURN
    - quantity: int (non-zero; > 0 for PURCHASE and RETURN)
    - reason: str (required)
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id must be an integer"}), 400

    try:
        result = inventory_service.adjust_stock(
            product_id=product_id,
            type=payload.get("type"),
            quantity=payload.get("quantity"),
            reason=payload.get("reason"),
            actor_id=g.session_context.user_id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InventoryError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result), 201


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_movements_route():
    """
    Query params:
    - product_id: int (optional)
    - type: PURCHASE | SALE | ADJUSTMENT | RETURN (optional)
    - limit: int (default 50, max 500)
    """
    movements = inventory_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        type=request.args.get("type"),
        limit=request.args.get("limit", 50, type=int),
        include_cost=has_permission(g.session_context.role, "VIEW_PROFIT"),
    )
    return jsonify({"movements": movements}), 200
