# Overview: Flask API routes for bills; parses input and returns JSON responses.

# backend/station/routes/bills.py
"""
Billing routes.

Bill creation accepts an optional bearer token so the dashboard can keep
billing in demo / offline mode; every other route requires authentication.
"""

from flask import Blueprint, request, jsonify, g, current_app, Response

from ..extensions import db
from ..services import billing_service, pdf_service
from ..services.billing_service import IncompleteItemError, ServiceInactiveError
from ..services.inventory_service import InsufficientStockError
from ..validation import ValidationError, NotFoundError, BusinessRuleError
from station.time_utils import parse_date_range
from ..decorators import require_auth, require_role, optional_auth

bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


@bills_bp.get("")
@require_auth
def list_bills_route():
    """
    Query params:
    - startDate, endDate (inclusive ISO dates)
    - paymentStatus, paymentMethod
    - licensePlate, customerName (case-insensitive substring)
    - sort=field:asc|desc (default created_at:desc)
    """
    try:
        start, end = parse_date_range(request.args.get("startDate"), request.args.get("endDate"))
    except ValueError:
        return jsonify(ValidationError("startDate/endDate must be ISO dates", field_name="startDate").to_dict()), 400

    try:
        bills = billing_service.list_bills(
            start=start,
            end=end,
            payment_status=request.args.get("paymentStatus") or None,
            payment_method=request.args.get("paymentMethod") or None,
            license_plate=request.args.get("licensePlate") or None,
            customer_name=request.args.get("customerName") or None,
            sort=request.args.get("sort"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    return jsonify([b.to_dict() for b in bills]), 200


@bills_bp.post("")
@optional_auth
def create_bill_route():
    """
    Create a bill.

    Body:
    {
      "customer": {"name", "phone", "email", "vehicle_info": {"license_plate", "make", "model", "year"}},
      "services": [{"service": id?, "name"?, "price"?, "quantity"?}],
      "products": [{"product": id?, "name"?, "price"?, "quantity"?}],
      "discount"?, "subtotal"?, "tax"?, "total"?,
      "payment_method"?, "payment_status"?, "notes"?
    }
    """
    payload = request.get_json(silent=True)
    user = g.current_user

    try:
        bill = billing_service.create_bill(payload, created_by_user_id=user.id if user else None)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientStockError as e:
        return jsonify({
            "error": str(e),
            "product": e.product_name,
            "available": e.available,
            "requested": e.requested,
        }), 400
    except (ServiceInactiveError, IncompleteItemError, BusinessRuleError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create bill")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"bill": bill.to_dict(), "message": "Bill created successfully"}), 201


@bills_bp.get("/<int:bill_id>")
@require_auth
def get_bill_route(bill_id: int):
    try:
        bill = billing_service.get_bill(bill_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(bill.to_dict()), 200


@bills_bp.patch("/<int:bill_id>/payment")
@require_auth
@require_role("admin", "cashier")
def update_payment_route(bill_id: int):
    data = request.get_json(silent=True) or {}

    try:
        bill = billing_service.update_payment_status(
            bill_id,
            payment_status=data.get("payment_status"),
            payment_method=data.get("payment_method"),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update bill payment")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(bill.to_dict()), 200


@bills_bp.get("/<int:bill_id>/pdf")
@require_auth
def bill_pdf_route(bill_id: int):
    try:
        bill = billing_service.get_bill(bill_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    try:
        pdf = pdf_service.render_bill(bill.to_dict(), current_app.config["BUSINESS_NAME"])
    except Exception:
        current_app.logger.exception("Failed to render bill PDF")
        return jsonify({"error": "Internal server error"}), 500

    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=bill-{bill.bill_number}.pdf"},
    )


@bills_bp.get("/vehicle/<license_plate>")
@require_auth
def vehicle_history_route(license_plate: str):
    """Service history for a vehicle, newest first."""
    bills = billing_service.vehicle_history(license_plate)
    return jsonify([b.to_dict() for b in bills]), 200
