# backend/boutique/routes/system.py
"""
System health and configuration endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import func

from ..extensions import db
from ..models import Article, Variant, StockMovement, Transaction, ShiftSession
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services.movement_service import MovementRecorder
from ..errors import service_error_response
from boutique.time_utils import utcnow, to_utc_z, store_now

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        article_count = db.session.query(func.count(Article.id)).scalar()
        variant_count = db.session.query(func.count(Variant.id)).scalar()
        movement_count = db.session.query(func.count(StockMovement.id)).scalar()
        transaction_count = db.session.query(func.count(Transaction.id)).scalar()
        open_shifts = db.session.query(func.count(ShiftSession.id)).scalar()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "articles": article_count,
                "variants": variant_count,
                "movements": movement_count,
                "transactions": transaction_count,
                "open_shifts": open_shifts,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), status


@system_bp.get("/api/system/info")
@require_operator
def system_info():
    cfg = current_app.config
    return jsonify({
        "store_timezone": cfg.get("STORE_TIMEZONE"),
        "store_time": store_now().isoformat(timespec="seconds"),
        "low_stock_threshold": cfg.get("LOW_STOCK_THRESHOLD"),
        "transfer_credit_mode": cfg.get("TRANSFER_CREDIT_MODE"),
    }), 200


@system_bp.get("/api/system/verify-ledger")
@require_operator
@require_role(OperatorRole.ADMIN)
def verify_ledger():
    """Replay every variant's movements and report mismatches with live balances."""
    try:
        discrepancies = MovementRecorder().verify_all()
    except Exception as e:
        return service_error_response(e)
    if discrepancies:
        current_app.logger.warning("Ledger replay found %d discrepancies", len(discrepancies))
    return jsonify({
        "consistent": not discrepancies,
        "discrepancies": [d.to_dict() for d in discrepancies],
    }), 200
