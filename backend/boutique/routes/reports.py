# Overview: Flask API routes for read-only reports.

from flask import Blueprint, request, jsonify

from ..decorators import require_operator
from ..services import reporting_service
from ..errors import service_error_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock")
@require_operator
def stock_report():
    try:
        report = reporting_service.stock_report(
            category=request.args.get("category"),
            search=request.args.get("search"),
        )
    except Exception as e:
        return service_error_response(e)
    return jsonify(report), 200


@reports_bp.get("/sales")
@require_operator
def sales_summary():
    """Query params: start, end (ISO-8601, inclusive)."""
    try:
        report = reporting_service.sales_summary(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except Exception as e:
        return service_error_response(e)
    return jsonify(report), 200


@reports_bp.get("/channels/<channel>")
@require_operator
def channel_movements(channel: str):
    limit = max(1, min(request.args.get("limit", default=500, type=int), 1000))
    try:
        report = reporting_service.channel_movements(
            channel,
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=limit,
        )
    except Exception as e:
        return service_error_response(e)
    return jsonify(report), 200
