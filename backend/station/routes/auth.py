# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/station/routes/auth.py
"""
Authentication API routes

- login issues a bearer token (JWT) for an active user
- register is admin-only; there is no self-registration
- me / profile operate on the caller's own account
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import auth_service
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_role


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
@require_auth
@require_role("admin")
def register_route():
    """Create a user account (admin only)."""
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            role=data.get("role") or "staff",
            phone=data.get("phone"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password.

    Returns the user and a bearer token to send as
    `Authorization: Bearer <token>` on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.info("Failed login for %s", email)
            return jsonify({"error": "Invalid credentials"}), 401

        token = auth_service.create_access_token(user)
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.put("/profile")
@require_auth
def profile_route():
    """
    Update the caller's own name / email / phone.

    Changing the password requires current_password alongside password.
    Role and active flag are not self-editable.
    """
    data = request.get_json(silent=True) or {}
    user = g.current_user

    try:
        if data.get("password"):
            auth_service.change_own_password(user, data.get("current_password"), data["password"])
        patch = {k: data[k] for k in ("name", "email", "phone") if k in data}
        auth_service.update_user(user, patch)
    except ValidationError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "Profile updated"}), 200
