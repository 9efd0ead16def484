# Overview: Flask API route for the Owner sales report.

# backend/lsms/routes/reports.py
from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_report():
    """Query params: start, end (YYYY-MM-DD, inclusive), top_n (default 10)."""
    try:
        report = reporting_service.sales_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
            top_n=request.args.get("top_n", 10, type=int),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
