# Overview: Flask API routes for POS carts, checkout and returns.

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..decorators import require_operator, require_role
from ..models import OperatorRole
from ..services import pos_service
from ..errors import service_error_response


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.post("/carts")
@require_operator
@require_role(OperatorRole.CASHIER)
def open_cart():
    """Request body: {"customer_id": int (optional)}; the operator is the cashier."""
    data = request.get_json(silent=True) or {}
    try:
        cart = pos_service.open_cart(g.operator, data.get("customer_id"))
        return jsonify(cart.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@pos_bp.get("/carts/<int:cart_id>")
@require_operator
def get_cart(cart_id: int):
    cart = pos_service.get_cart(cart_id)
    if cart is None:
        return jsonify({"error": f"Cart {cart_id} not found"}), 404
    return jsonify(cart.to_dict()), 200


@pos_bp.post("/carts/<int:cart_id>/items")
@require_operator
@require_role(OperatorRole.CASHIER)
def add_item(cart_id: int):
    """
    Request body:
    {
        "code": str  OR  "article_id": str + "size_internal": str,
        "quantity": int (default 1),
        "discount_percent": number (optional line discount)
    }

    Returns:
        201: Line added or increased
        404: Code not recognized
        409: Not enough store stock available
    """
    data = request.get_json(silent=True) or {}
    try:
        line = pos_service.add_item(
            cart_id,
            code=data.get("code"),
            article_id=data.get("article_id"),
            size_internal=data.get("size_internal"),
            quantity=data.get("quantity", 1),
            discount_percent=data.get("discount_percent"),
        )
        return jsonify(line.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@pos_bp.patch("/carts/<int:cart_id>/lines/<int:line_id>")
@require_operator
@require_role(OperatorRole.CASHIER)
def set_line_quantity(cart_id: int, line_id: int):
    data = request.get_json(silent=True) or {}
    try:
        line = pos_service.set_line_quantity(cart_id, line_id, data.get("quantity"))
        return jsonify(line.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@pos_bp.delete("/carts/<int:cart_id>/lines/<int:line_id>")
@require_operator
@require_role(OperatorRole.CASHIER)
def remove_line(cart_id: int, line_id: int):
    try:
        cart = pos_service.remove_line(cart_id, line_id)
        return jsonify(cart.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@pos_bp.post("/carts/<int:cart_id>/abandon")
@require_operator
@require_role(OperatorRole.CASHIER)
def abandon_cart(cart_id: int):
    try:
        cart = pos_service.abandon_cart(cart_id)
        return jsonify(cart.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@pos_bp.post("/carts/<int:cart_id>/checkout")
@require_operator
@require_role(OperatorRole.CASHIER)
def checkout(cart_id: int):
    """
    Request body:
    {
        "payment_method": "Cash" | "Card",
        "amount_paid_cents": int (optional, default = total; less = partial payment),
        "order_discount_percent": number (optional),
        "cash_received_cents": int (optional, Cash only)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        tx = pos_service.checkout(
            cart_id,
            payment_method=data.get("payment_method"),
            amount_paid_cents=data.get("amount_paid_cents"),
            order_discount_percent=data.get("order_discount_percent"),
            cash_received_cents=data.get("cash_received_cents"),
        )
        return jsonify(tx.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)


@pos_bp.post("/transactions/<int:transaction_id>/return")
@require_operator
@require_role(OperatorRole.CASHIER)
def process_return(transaction_id: int):
    try:
        tx = pos_service.process_return(transaction_id, actor=g.operator)
        return jsonify(tx.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        return service_error_response(e)
