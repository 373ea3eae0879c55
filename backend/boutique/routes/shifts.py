# Overview: Flask API routes for cashier shifts and settlement records.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services import shift_service
from ..errors import service_error_response
from boutique.time_utils import parse_iso_datetime, parse_iso_date, to_store_local, utcnow


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("/start")
@require_operator
@require_role(OperatorRole.CASHIER)
def start_shift():
    try:
        session = shift_service.start_shift(g.operator)
        return jsonify(session.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@shifts_bp.post("/end")
@require_operator
@require_role(OperatorRole.CASHIER)
def end_shift():
    try:
        record = shift_service.end_shift(g.operator)
        return jsonify(record.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@shifts_bp.get("/current")
@require_operator
def current_shift():
    """Live totals for the operator's open shift (nothing is closed)."""
    try:
        return jsonify(shift_service.preview_shift(g.operator)), 200
    except Exception as e:
        return service_error_response(e)


@shifts_bp.get("/open")
@require_operator
def open_shifts():
    return jsonify({"items": [s.to_dict() for s in shift_service.list_open_sessions()]}), 200


@shifts_bp.get("/records")
@require_operator
def shift_records():
    """Query params: cashier, business_date (YYYY-MM-DD), shift, limit."""
    try:
        business_date = parse_iso_date(request.args.get("business_date"))
    except ValueError:
        return jsonify({"error": "business_date must be YYYY-MM-DD"}), 400
    limit = max(1, min(request.args.get("limit", default=100, type=int), 500))
    records = shift_service.list_shift_records(
        cashier_name=request.args.get("cashier"),
        business_date=business_date,
        shift=request.args.get("shift"),
        limit=limit,
    )
    return jsonify({"items": [r.to_dict() for r in records]}), 200


@shifts_bp.get("/classify")
@require_operator
def classify():
    """Shift and business date for ?at=ISO-8601 (default now), on the store clock."""
    try:
        at = parse_iso_datetime(request.args.get("at")) or utcnow()
    except ValueError:
        return jsonify({"error": "at must be an ISO-8601 datetime"}), 400
    tag = shift_service.classify_moment(to_store_local(at))
    return jsonify({
        "shift": tag.shift.value,
        "business_date": tag.business_date.isoformat(),
    }), 200
