# Overview: Flask API routes for store settings; parses input and returns JSON responses.

# backend/lsms/routes/settings.py
from __future__ import annotations

from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_auth, require_permission
from ..services import settings_service
from ..services.settings_service import SettingsValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_permission("MANAGE_SETTINGS")
def list_settings_route():
    items = settings_service.list_settings()
    return jsonify({"settings": items, "count": len(items)}), 200


@settings_bp.put("/<key>")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_setting_route(key: str):
    """Request body: {value, description?}. Unknown keys are rejected."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    if "value" not in payload:
        return jsonify({"error": "value is required"}), 400

    try:
        setting = settings_service.upsert_setting(
            key=key,
            value=payload.get("value"),
            description=payload.get("description"),
            actor_id=g.session_context.user_id,
        )
    except SettingsValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update setting %s", key)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"setting": setting}), 200
