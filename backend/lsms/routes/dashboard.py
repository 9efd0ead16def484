# Overview: Flask API route for the home-screen dashboard.

# backend/lsms/routes/dashboard.py
from flask import Blueprint, jsonify, g

from ..permissions import has_permission
from ..services import reporting_service
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """Today's figures; profit and expense figures only for VIEW_PROFIT roles."""
    summary = reporting_service.dashboard_summary(
        is_owner=has_permission(g.session_context.role, "VIEW_PROFIT"),
    )
    return jsonify(summary), 200
