# Overview: Flask API routes for stock edits, the movement ledger and availability.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services import catalog_service
from ..services.ledger_service import StockLedger
from ..services.movement_service import MovementRecorder
from ..errors import service_error_response
from boutique.time_utils import parse_iso_datetime

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- end filters are inclusive: occurred_at <= end.
"""

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.put("/variants/<article_id>/<size_internal>/stock")
@require_operator
@require_role(OperatorRole.WAREHOUSE)
def set_stock(article_id: str, size_internal: str):
    """
    Set absolute quantities; each changed location is logged as an Adjustment.

    Request body:
    {
        "store_qty": int (optional, not allowed for Warehouse operators),
        "warehouse_qty": int (optional),
        "note": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        variant = catalog_service.set_variant_stock(
            article_id,
            size_internal,
            store_qty=data.get("store_qty"),
            warehouse_qty=data.get("warehouse_qty"),
            actor=g.operator,
            role=g.operator_role,
            note=data.get("note"),
        )
        return jsonify(variant.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@inventory_bp.get("/variants/<article_id>/<size_internal>/availability")
@require_operator
def availability(article_id: str, size_internal: str):
    try:
        ledger = StockLedger()
        store_qty, warehouse_qty = ledger.balances(article_id, size_internal)
        held = ledger.held_quantity(article_id, size_internal)
        available = ledger.available_to_sell(article_id, size_internal)
    except Exception as e:
        return service_error_response(e)
    return jsonify({
        "article_id": article_id,
        "size_internal": size_internal,
        "store_qty": store_qty,
        "warehouse_qty": warehouse_qty,
        "held_in_carts": held,
        "available_to_sell": available,
    }), 200


@inventory_bp.get("/variants/<article_id>/<size_internal>/history")
@require_operator
def variant_history(article_id: str, size_internal: str):
    recorder = MovementRecorder()
    movements = recorder.variant_history(article_id, size_internal)
    replay_store, replay_warehouse = recorder.replay_variant(article_id, size_internal)
    return jsonify({
        "article_id": article_id,
        "size_internal": size_internal,
        "replay": {"store_qty": replay_store, "warehouse_qty": replay_warehouse},
        "movements": [m.to_dict() for m in movements],
    }), 200


@inventory_bp.get("/movements")
@require_operator
def list_movements():
    """
    Query params: search, kind, channel, article_id, size_internal,
    start, end (ISO-8601), limit (1..1000).
    """
    limit = request.args.get("limit", default=200, type=int)
    limit = max(1, min(limit, 1000))

    try:
        start_dt = parse_iso_datetime(request.args.get("start"))
        end_dt = parse_iso_datetime(request.args.get("end"))
    except Exception:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400

    try:
        movements = MovementRecorder().list_movements(
            search=request.args.get("search"),
            kind=request.args.get("kind"),
            channel=request.args.get("channel"),
            article_id=request.args.get("article_id"),
            size_internal=request.args.get("size_internal"),
            start=start_dt,
            end=end_dt,
            limit=limit,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [m.to_dict() for m in movements]}), 200
