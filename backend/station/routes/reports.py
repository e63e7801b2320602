from flask import Blueprint, jsonify, request, current_app, Response

from station.decorators import require_auth, require_role
from station.services import reporting_service, pdf_service
from station.time_utils import parse_iso_datetime, parse_date_range
from station.validation import ValidationError, parse_bool_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

REPORT_FORMATS = ("json", "pdf")


def _format_arg() -> str:
    fmt = (request.args.get("format") or "json").lower()
    if fmt not in REPORT_FORMATS:
        raise ValidationError("format must be json or pdf", field_name="format")
    return fmt


def _pdf_response(pdf: bytes, filename: str) -> Response:
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@reports_bp.get("/daily")
@require_auth
@require_role("admin", "staff")
def daily_report():
    """Query params: date (default today), staffId, category, format=json|pdf."""
    try:
        fmt = _format_arg()
        raw_date = request.args.get("date")
        try:
            day = parse_iso_datetime(raw_date).date() if raw_date else None
        except ValueError:
            raise ValidationError("date must be an ISO date", field_name="date")
        report = reporting_service.daily_report(
            day,
            staff_id=request.args.get("staffId", type=int),
            category=request.args.get("category") or None,
        )
    except ValidationError as exc:
        return jsonify(exc.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to build daily report")
        return jsonify({"error": "Internal server error"}), 500

    if fmt == "pdf":
        try:
            pdf = pdf_service.render_daily_report(report, current_app.config["BUSINESS_NAME"])
        except Exception:
            current_app.logger.exception("Failed to render daily report PDF")
            return jsonify({"error": "Internal server error"}), 500
        return _pdf_response(pdf, f"daily-report-{report['date']}.pdf")

    return jsonify(report), 200


@reports_bp.get("/analytics")
@require_auth
@require_role("admin")
def sales_analytics():
    """
    Query params:
    - period=week|month|year, or startDate + endDate (inclusive); default last 30 days
    - limit: size of the top services / products lists (default 5)
    """
    try:
        start, end = parse_date_range(request.args.get("startDate"), request.args.get("endDate"))
    except ValueError:
        return jsonify(ValidationError("startDate/endDate must be ISO dates", field_name="startDate").to_dict()), 400

    limit = request.args.get("limit", type=int) or reporting_service.DEFAULT_TOP_LIMIT
    if limit < 1:
        return jsonify(ValidationError("limit must be >= 1", field_name="limit").to_dict()), 400

    try:
        start, end = reporting_service.resolve_analytics_range(request.args.get("period"), start, end)
        report = reporting_service.sales_analytics(start, end, limit=limit)
    except Exception:
        current_app.logger.exception("Failed to build sales analytics")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(report), 200


@reports_bp.get("/inventory")
@require_auth
@require_role("admin", "inventory_manager")
def inventory_report():
    """Query params: category, lowStock, sort=field:asc|desc, format=json|pdf."""
    try:
        fmt = _format_arg()
        report = reporting_service.inventory_report(
            category=request.args.get("category") or None,
            low_stock=parse_bool_arg(request.args.get("lowStock")),
            sort=request.args.get("sort"),
        )
    except ValidationError as exc:
        return jsonify(exc.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to build inventory report")
        return jsonify({"error": "Internal server error"}), 500

    if fmt == "pdf":
        try:
            pdf = pdf_service.render_inventory_report(report, current_app.config["BUSINESS_NAME"])
        except Exception:
            current_app.logger.exception("Failed to render inventory report PDF")
            return jsonify({"error": "Internal server error"}), 500
        return _pdf_response(pdf, "inventory-report.pdf")

    return jsonify(report), 200
