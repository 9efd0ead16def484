# Overview: Flask API routes for user management; parses input and returns JSON responses.

# backend/lsms/routes/admin.py
"""
User management routes (Owner only).

- GET   /api/users             list users with activity counts
- POST  /api/users             create a user
- PATCH /api/users/<id>        activate / deactivate
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service
from ..services.auth_service import AuthError, UserNotFoundError
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/users")


@admin_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    try:
        return jsonify({"users": auth_service.list_users()}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Create new user.

    Request body:
    - name: str (required)
    - email: str (required, unique)
    - password: str (required, strength-checked)
    - role: OWNER | SELLER (default SELLER)
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        name = data.get("name")
        email = data.get("email")
        password = data.get("password")

        if not all([name, email, password]):
            return jsonify({"error": "name, email, and password required"}), 400

        user = auth_service.create_user(
            name=name,
            email=email,
            password=password,
            role=data.get("role") or "SELLER",
            actor_id=g.session_context.user_id,
        )

        return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (AuthError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user(user_id: int):
    """
    Update user status.

    Request body:
    - is_active: bool
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400
        if "is_active" not in data:
            return jsonify({"error": "is_active required"}), 400

        user = auth_service.set_user_active(
            user_id=user_id,
            is_active=data.get("is_active"),
            actor_id=g.session_context.user_id,
        )
        return jsonify({"user": user.to_dict()}), 200

    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (AuthError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500
