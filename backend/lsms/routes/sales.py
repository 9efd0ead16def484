# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/lsms/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import SaleError, SaleNotFoundError
from ..validation import ConflictError
from ..permissions import has_permission
from ..decorators import require_auth, require_permission
from lsms.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Record a completed sale.

    Request body:
    - items: [{product_id, quantity}] (required, non-empty)
    - payment_method: CASH | MPESA | CARD
    - payment_reference: str (optional, e.g. M-Pesa code)
    - discount_cents: int >= 0 (optional)

    Requires: CREATE_SALE permission
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400

        sale = sales_service.create_sale(
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
            discount_cents=data.get("discount_cents", 0),
            actor_id=g.session_context.user_id,
        )

        include_cost = has_permission(g.session_context.role, "VIEW_PROFIT")
        return jsonify({"sale": sale.to_dict(include_cost=include_cost)}), 201

    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission("CREATE_SALE")  # Can view sales if can create them
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - start / end: ISO-8601 datetime (inclusive)
    - page, limit: pagination (default 1, 50)
    - include_voided: bool (Owner only)
    """
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400

        include_voided = (
            (request.args.get("include_voided") or "").lower() == "true"
            and has_permission(g.session_context.role, "VOID_SALES")
        )

        result = sales_service.list_sales(
            start=start,
            end=end,
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
            include_voided=include_voided,
            include_cost=has_permission(g.session_context.role, "VIEW_PROFIT"),
        )
        return jsonify(result), 200

    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("CREATE_SALE")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({
            "sale": sale.to_dict(include_cost=has_permission(g.session_context.role, "VIEW_PROFIT"))
        }), 200
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_permission("VOID_SALES")
def void_sale_route(sale_id: int):
    """
    Void a sale and restock its items.

    Request body:
    - reason: str (required)

    Requires: VOID_SALES permission (Owner)
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        sale = sales_service.void_sale(
            sale_id=sale_id,
            actor_id=g.session_context.user_id,
            reason=data.get("reason"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500
