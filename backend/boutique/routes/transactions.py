# Overview: Flask API routes for querying transactions.

from flask import Blueprint, request, jsonify

from ..decorators import require_operator
from ..services.transaction_service import TransactionRecorder
from ..errors import service_error_response
from boutique.time_utils import parse_iso_datetime, parse_iso_date


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_operator
def list_transactions():
    """
    Query params: start, end, since (ISO-8601), type, customer_id,
    business_date (YYYY-MM-DD), shift, cashier, limit (1..500).
    """
    try:
        start_dt = parse_iso_datetime(request.args.get("start"))
        end_dt = parse_iso_datetime(request.args.get("end"))
        since_dt = parse_iso_datetime(request.args.get("since"))
        business_date = parse_iso_date(request.args.get("business_date"))
    except ValueError:
        return jsonify({"error": "Invalid date filter"}), 400

    limit = max(1, min(request.args.get("limit", default=200, type=int), 500))
    try:
        txs = TransactionRecorder().list_transactions(
            start=start_dt,
            end=end_dt,
            since=since_dt,
            type=request.args.get("type"),
            customer_id=request.args.get("customer_id", type=int),
            business_date=business_date,
            shift=request.args.get("shift"),
            cashier_name=request.args.get("cashier"),
            limit=limit,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return service_error_response(e)
    return jsonify({"items": [tx.to_dict(include_lines=False) for tx in txs]}), 200


@transactions_bp.get("/<int:transaction_id>")
@require_operator
def get_transaction(transaction_id: int):
    tx = TransactionRecorder().get_transaction(transaction_id)
    if tx is None:
        return jsonify({"error": f"Transaction {transaction_id} not found"}), 404
    return jsonify(tx.to_dict()), 200
