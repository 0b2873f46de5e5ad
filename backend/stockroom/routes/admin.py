# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for staff accounts.

- POST /api/admin/users: admin only
- POST /api/admin/change-password: admin, or a user changing their own
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service
from ..validation import ConflictError, NotFoundError, ValidationError
from ..decorators import require_auth, require_role

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/users")
@require_auth
@require_role("admin")
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            data.get("username"),
            data.get("password"),
            role=data.get("role"),
        )
        return jsonify({"ok": True, "username": user.username, "role": user.role}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/change-password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    new_password = data.get("newPassword")

    if not username or not new_password:
        return jsonify({"error": "Username and newPassword required"}), 400
    if not g.current_user.is_admin and g.current_user.username != username:
        return jsonify({"error": "Not allowed"}), 403

    try:
        auth_service.change_password(username, new_password)
        return jsonify({"ok": True}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500
