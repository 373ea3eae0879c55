# Overview: Flask API routes for warehouse channel dispatches.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services import distribution_service
from ..errors import service_error_response


dispatch_bp = Blueprint("dispatch", __name__, url_prefix="/api/dispatch")


@dispatch_bp.get("/channels")
@require_operator
def list_channels():
    return jsonify({
        "items": [
            {
                "channel": policy.channel.value,
                "transaction_type": policy.transaction_type.value if policy.transaction_type else None,
                "movement_kind": policy.movement_kind.value,
                "recipient_label": policy.recipient_label,
                "reference_required": policy.reference_required,
                "zero_price": policy.zero_price,
            }
            for policy in distribution_service.CHANNEL_POLICIES.values()
        ]
    }), 200


@dispatch_bp.post("/<channel>")
@require_operator
@require_role(OperatorRole.WAREHOUSE)
def dispatch(channel: str):
    """
    Run a whole dispatch (scan, review, details, confirm) in one request.

    Request body:
    {
        "items": [{"code": str, "quantity": int} | {"article_id": str, "size_internal": str, "quantity": int}],
        "recipient_name": str (required except Transfer),
        "order_reference": str (required except Transfer),
        "discount_percent": number (optional),
        "notes": str (optional)
    }

    Returns:
        201: Dispatch committed
        400: Missing field / empty queue / unknown channel
        404: Code not recognized
        409: Exceeds warehouse stock
    """
    data = request.get_json(silent=True) or {}
    try:
        result = distribution_service.dispatch(
            channel,
            data.get("items") or [],
            actor=g.operator,
            recipient_name=data.get("recipient_name"),
            order_reference=data.get("order_reference"),
            discount_percent=data.get("discount_percent"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)
