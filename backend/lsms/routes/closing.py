# Overview: Flask API routes for the daily closing; parses input and returns JSON responses.

# backend/lsms/routes/closing.py
from flask import Blueprint, request, jsonify, g, current_app

from ..services import closing_service
from ..services.closing_service import ClosingError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission
from lsms.time_utils import parse_iso_date

closing_bp = Blueprint("closing", __name__, url_prefix="/api/closing")


@closing_bp.get("")
@require_auth
@require_permission("PERFORM_CLOSING")
def closing_overview_route():
    """Expected takings for ?date=YYYY-MM-DD (default: today) and recent closings."""
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    return jsonify(closing_service.get_closing_overview(day)), 200


@closing_bp.post("")
@require_auth
@require_permission("PERFORM_CLOSING")
def submit_closing_route():
    """
    Submit the end-of-day cash count.

    Request body:
    - date: YYYY-MM-DD (required)
    - declared_cash_cents: int >= 0 (required)
    - declared_mpesa_cents, declared_card_cents: int >= 0 (optional, reference only)
    - notes: str (optional)

    Returns 409 if the day is already closed.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        day = parse_iso_date(data.get("date"))
    except (ValueError, AttributeError):
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    try:
        closing = closing_service.submit_closing(
            day=day,
            declared_cash_cents=data.get("declared_cash_cents"),
            declared_mpesa_cents=data.get("declared_mpesa_cents"),
            declared_card_cents=data.get("declared_card_cents"),
            notes=data.get("notes"),
            actor_id=g.session_context.user_id,
        )
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ClosingError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to submit closing")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"closing": closing.to_dict()}), 201
