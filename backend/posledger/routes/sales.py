# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/posledger/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models import SaleStatus
from ..services import sales_service
from ..services.concurrency import run_with_retry
from ..validation import ValidationError, parse_sale
from ..decorators import require_user


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_user
def process_sale_route():
    """
    Checkout: validate, debit stock and persist the sale atomically.

    Returns the receipt (201). Rejections carry the offending line and
    quantities in "details".
    """
    try:
        command = parse_sale(request.get_json(silent=True), user_id=g.user_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        outcome = run_with_retry(
            lambda: _raise_on_retryable(sales_service.attempt_sale(command)),
            attempts=current_app.config["SALE_RETRY_ATTEMPTS"],
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500

    if not outcome.ok:
        return jsonify(outcome.error.to_dict()), outcome.error.status_code

    return jsonify({"receipt": outcome.receipt.to_dict()}), 201


def _raise_on_retryable(outcome):
    if outcome.error is not None and outcome.error.retryable:
        raise outcome.error
    return outcome


@sales_bp.get("")
@require_user
def list_sales_route():
    limit = request.args.get("limit", default=100, type=int)
    status = request.args.get("status")
    try:
        status_filter = SaleStatus[status.upper()] if status else None
    except KeyError:
        return jsonify({"error": "status must be PENDING, COMPLETED or CANCELLED"}), 400

    sales = sales_service.list_sales(limit=max(1, min(limit, 500)), status=status_filter)
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@sales_bp.get("/<int:sale_id>")
@require_user
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.get("/<int:sale_id>/receipt")
@require_user
def get_receipt_route(sale_id: int):
    try:
        receipt = sales_service.get_sale_receipt(sale_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"receipt": receipt.to_dict()}), 200
