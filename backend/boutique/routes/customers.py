# Overview: Flask API routes for the customer directory.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services import customer_service
from ..services.transaction_service import TransactionRecorder
from ..errors import service_error_response


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_operator
def list_customers():
    customers = customer_service.list_customers(request.args.get("search"))
    return jsonify({"items": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_operator
@require_role(OperatorRole.CASHIER)
def create_customer():
    """Request body: {"name": str, "phone": str (optional, unique)}"""
    try:
        customer = customer_service.create_customer(request.get_json(silent=True) or {}, actor=g.operator)
        return jsonify(customer.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@customers_bp.get("/<int:customer_id>")
@require_operator
def get_customer(customer_id: int):
    customer = customer_service.get_customer(customer_id)
    if customer is None:
        return jsonify({"error": f"Customer {customer_id} not found"}), 404
    data = customer.to_dict()
    data["transactions"] = [
        tx.to_dict(include_lines=False)
        for tx in TransactionRecorder().transactions_for_customer(customer_id)
    ]
    return jsonify(data), 200


@customers_bp.patch("/<int:customer_id>")
@require_operator
@require_role(OperatorRole.CASHIER)
def update_customer(customer_id: int):
    try:
        customer = customer_service.update_customer(
            customer_id, request.get_json(silent=True) or {}, actor=g.operator
        )
        return jsonify(customer.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)
