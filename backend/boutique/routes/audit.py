# Overview: Flask API routes for the operator audit log.

from flask import Blueprint, request, jsonify

from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services.audit_service import list_audit_events


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_operator
@require_role(OperatorRole.ADMIN)
def list_events():
    """Query params: action, actor, limit (1..1000)."""
    limit = max(1, min(request.args.get("limit", default=200, type=int), 1000))
    events = list_audit_events(
        action=request.args.get("action"),
        actor=request.args.get("actor"),
        limit=limit,
    )
    return jsonify({"items": [ev.to_dict() for ev in events]}), 200
