# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/station/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
- create / update / stock changes: admin, inventory_manager
- delete: admin
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import products_service, inventory_service
from ..services.inventory_service import InsufficientStockError
from ..models import Product, PRODUCT_CATEGORIES, PRODUCT_UNITS, TRANSACTION_TYPES
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_price,
    parse_bool_arg,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from station.time_utils import parse_date_range
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "price", "category", "quantity_in_stock",
        "low_stock_threshold", "unit", "barcode", "is_active",
    },
    required_on_create={"name", "price", "category"},
    choices={"category": PRODUCT_CATEGORIES, "unit": PRODUCT_UNITS},
    minimums={"price": 0, "quantity_in_stock": 0, "low_stock_threshold": 1},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products as a plain array.

    Query params:
    - category, search (name substring)
    - active, inStock, lowStock: true/false
    - sort: field:asc|desc (default name:asc)
    """
    try:
        products = products_service.list_products(
            category=request.args.get("category") or None,
            in_stock=parse_bool_arg(request.args.get("inStock")),
            low_stock=parse_bool_arg(request.args.get("lowStock")),
            active=parse_bool_arg(request.args.get("active")),
            search=request.args.get("search") or None,
            sort=request.args.get("sort"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify([p.to_dict() for p in products]), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


@products_bp.post("")
@require_auth
@require_role("admin", "inventory_manager")
def create_product_route():
    """Create a product. Opening stock is recorded in the inventory ledger."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_price(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        created = products_service.create_product(patch=patch, created_by_user_id=g.current_user.id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created.to_dict()), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("admin", "inventory_manager")
def update_product_route(product_id: int):
    """Partial update. Use PATCH /<id>/stock to change stock."""
    payload = request.get_json(silent=True) or {}
    if "quantity_in_stock" in payload:
        return jsonify(ValidationError(
            "quantity_in_stock can only be changed through the stock endpoint",
            field_name="quantity_in_stock",
        ).to_dict()), 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_price(patch)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated.to_dict()), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin")
def delete_product_route(product_id: int):
    """
    Delete a product.

    Products already sold or moved in the ledger are deactivated instead;
    the response then carries "deactivated": true.
    """
    try:
        deactivated = products_service.delete_product(product_id=product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True, "deactivated": deactivated}), 200


@products_bp.patch("/<int:product_id>/stock")
@require_auth
@require_role("admin", "inventory_manager")
def update_stock_route(product_id: int):
    """
    Apply one stock movement.

    Body: {"quantity": int >= 0, "type": purchase|sale|adjustment|return|damaged,
           "unit_price"?: number, "notes"?: str}
    `adjustment` sets the stock to `quantity`; the other types add or remove it.
    """
    data = request.get_json(silent=True) or {}

    errors = []
    quantity = data.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        errors.append({"field": "quantity", "message": "quantity must be a non-negative integer"})
    movement_type = data.get("type")
    if movement_type not in TRANSACTION_TYPES:
        errors.append({"field": "type", "message": f"type must be one of: {', '.join(TRANSACTION_TYPES)}"})
    unit_price = data.get("unit_price")
    if unit_price is not None and (isinstance(unit_price, bool) or not isinstance(unit_price, (int, float))):
        errors.append({"field": "unit_price", "message": "unit_price must be a number"})
    if errors:
        return jsonify(ValidationError(errors).to_dict()), 400

    try:
        product, tx = inventory_service.adjust_stock(
            product_id=product_id,
            quantity=quantity,
            movement_type=movement_type,
            unit_price=float(unit_price) if unit_price is not None else None,
            notes=data.get("notes"),
            performed_by_user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except InsufficientStockError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "available": e.available, "requested": e.requested}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict(), "transaction": tx.to_dict()}), 200


@products_bp.get("/<int:product_id>/stock-history")
@require_auth
def stock_history_route(product_id: int):
    """Query params: type, startDate, endDate (inclusive)."""
    try:
        start, end = parse_date_range(request.args.get("startDate"), request.args.get("endDate"))
    except ValueError:
        return jsonify(ValidationError("startDate/endDate must be ISO dates", field_name="startDate").to_dict()), 400

    try:
        txs = inventory_service.stock_history(
            product_id,
            movement_type=request.args.get("type") or None,
            start=start,
            end=end,
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify([tx.to_dict() for tx in txs]), 200
