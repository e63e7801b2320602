# Overview: Flask API routes for the service catalog; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import service_catalog_service
from ..models import Service, SERVICE_CATEGORIES
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_price,
    parse_bool_arg,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from ..decorators import require_auth, require_role

SERVICE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price", "duration", "category", "is_active"},
    required_on_create={"name", "price", "category"},
    choices={"category": SERVICE_CATEGORIES},
    minimums={"price": 0, "duration": 0},
)

services_bp = Blueprint("services", __name__, url_prefix="/api/services")


@services_bp.get("")
@require_auth
def list_services():
    """Query params: category, active, search, sort=field:asc|desc."""
    try:
        services = service_catalog_service.list_services(
            category=request.args.get("category") or None,
            active=parse_bool_arg(request.args.get("active")),
            search=request.args.get("search") or None,
            sort=request.args.get("sort"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify([s.to_dict() for s in services]), 200


@services_bp.get("/<int:service_id>")
@require_auth
def get_service_route(service_id: int):
    try:
        service = service_catalog_service.get_service(service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(service.to_dict()), 200


@services_bp.post("")
@require_auth
@require_role("admin", "staff")
def create_service_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Service, payload=payload, policy=SERVICE_POLICY, partial=False)
        enforce_rules_price(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        created = service_catalog_service.create_service(patch=patch, created_by_user_id=g.current_user.id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create service")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created.to_dict()), 201


@services_bp.put("/<int:service_id>")
@require_auth
@require_role("admin", "staff")
def update_service_route(service_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Service, payload=payload, policy=SERVICE_POLICY, partial=True)
        enforce_rules_price(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        updated = service_catalog_service.update_service(service_id=service_id, patch=patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update service")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated.to_dict()), 200


@services_bp.delete("/<int:service_id>")
@require_auth
@require_role("admin")
def delete_service_route(service_id: int):
    try:
        deactivated = service_catalog_service.delete_service(service_id=service_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete service")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True, "deactivated": deactivated}), 200
