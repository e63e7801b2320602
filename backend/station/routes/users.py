# Overview: Flask API routes for user management; parses input and returns JSON responses.

"""
User management routes (admin only).

Deleting or demoting the last admin is refused with 409 so the station is
never left without an account that can manage users.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import auth_service
from ..validation import ValidationError, NotFoundError, ConflictError, parse_bool_arg
from ..decorators import require_auth, require_role

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role("admin")
def list_users_route():
    """
    Query params:
    - role, active (true/false), search (name or email substring), sort=field:asc|desc
    """
    try:
        users = auth_service.list_users(
            role=request.args.get("role") or None,
            active=parse_bool_arg(request.args.get("active")),
            search=request.args.get("search") or None,
            sort=request.args.get("sort"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify([u.to_dict() for u in users]), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_role("admin")
def get_user_route(user_id: int):
    try:
        user = auth_service.get_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(user.to_dict()), 200


@users_bp.put("/<int:user_id>")
@require_auth
@require_role("admin")
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    patch = {k: data[k] for k in ("name", "email", "role", "phone", "is_active", "password") if k in data}

    try:
        user = auth_service.get_user(user_id)
        auth_service.update_user(user, patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(user.to_dict()), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role("admin")
def delete_user_route(user_id: int):
    try:
        auth_service.delete_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200
