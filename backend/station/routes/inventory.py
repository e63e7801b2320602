# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, Response

from ..services import inventory_service, export_service
from ..validation import ValidationError
from station.time_utils import parse_date_range
from ..decorators import require_auth, require_role

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/transactions")
@require_auth
def list_transactions_route():
    """
    Stock ledger.

    Query params: productId, type, startDate, endDate (inclusive), sort=field:asc|desc
    """
    try:
        start, end = parse_date_range(request.args.get("startDate"), request.args.get("endDate"))
    except ValueError:
        return jsonify(ValidationError("startDate/endDate must be ISO dates", field_name="startDate").to_dict()), 400

    try:
        txs = inventory_service.list_transactions(
            product_id=request.args.get("productId", type=int),
            movement_type=request.args.get("type") or None,
            start=start,
            end=end,
            sort=request.args.get("sort"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify([tx.to_dict() for tx in txs]), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = inventory_service.low_stock_products(request.args.get("category") or None)
    return jsonify([p.to_dict() for p in products]), 200


@inventory_bp.get("/export")
@require_auth
@require_role("admin", "inventory_manager")
def export_route():
    """CSV download. Query param: type=products|transactions (default products)."""
    export_type = request.args.get("type", "products")

    try:
        text, filename = export_service.export_csv(export_type)
    except ValueError as e:
        return jsonify(ValidationError(str(e), field_name="type").to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to export inventory")
        return jsonify({"error": "Internal server error"}), 500

    return Response(
        text,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
