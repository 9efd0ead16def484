# Overview: Flask API routes for expenses; parses input and returns JSON responses.

# backend/lsms/routes/expenses.py
"""
Expense routes.

SECURITY:
- Any authenticated user with CREATE_EXPENSE may submit and list expenses
  (sellers only ever see their own)
- Decisions and new categories require APPROVE_EXPENSES (Owner)
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Expense
from ..permissions import has_permission
from ..services import expense_service
from ..services.expense_service import ExpenseError, ExpenseNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_expense,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from lsms.time_utils import parse_iso_datetime

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "amount_cents", "description", "payment_method", "receipt_image"},
    required_on_create={"category_id", "amount_cents", "description"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_permission("CREATE_EXPENSE")
def list_expenses_route():
    """
    Query params:
    - status: PENDING | APPROVED | REJECTED
    - start / end: ISO-8601 datetime on created_at
    - page, limit
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400

    ctx = g.session_context
    result = expense_service.list_expenses(
        actor_id=ctx.user_id,
        is_owner=has_permission(ctx.role, "APPROVE_EXPENSES"),
        status=request.args.get("status"),
        start=start,
        end=end,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify(result), 200


@expenses_bp.post("")
@require_auth
@require_permission("CREATE_EXPENSE")
def submit_expense_route():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    if isinstance(payload.get("payment_method"), str):
        payload["payment_method"] = payload["payment_method"].strip().upper()

    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch)
        expense = expense_service.submit_expense(patch=patch, actor_id=g.session_context.user_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to submit expense")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"expense": expense.to_dict(), "message": "Expense submitted for approval"}), 201


@expenses_bp.post("/<int:expense_id>/decision")
@require_auth
@require_permission("APPROVE_EXPENSES")
def decide_expense_route(expense_id: int):
    """
    Request body:
    - action: approve | reject
    - rejection_reason: str (required to reject)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    try:
        expense = expense_service.decide_expense(
            expense_id=expense_id,
            action=data.get("action"),
            rejection_reason=data.get("rejection_reason"),
            actor_id=g.session_context.user_id,
        )
    except ExpenseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ExpenseError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to decide expense")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"expense": expense.to_dict()}), 200


@expenses_bp.get("/categories")
@require_auth
@require_permission("CREATE_EXPENSE")
def list_expense_categories_route():
    return jsonify({"categories": expense_service.list_expense_categories()}), 200


@expenses_bp.post("/categories")
@require_auth
@require_permission("APPROVE_EXPENSES")
def create_expense_category_route():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    try:
        category = expense_service.create_expense_category(
            name=data.get("name"),
            description=data.get("description"),
        )
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"category": category.to_dict()}), 201
