# Overview: Flask API route for reading the audit trail.

# backend/lsms/routes/audit.py
from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import audit_service


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_audit_logs_route():
    logs = audit_service.list_audit_logs(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id"),
        action=request.args.get("action"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"logs": logs, "count": len(logs)}), 200
