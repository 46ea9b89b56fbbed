# backend/posledger/routes/warehouses.py
"""
Warehouse and stock movement routes.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- since/until filtering is inclusive.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..models import Warehouse
from ..services import inventory_service
from ..services.concurrency import run_with_retry
from ..time_utils import parse_iso_datetime
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    parse_stock_movement,
    validate_payload,
)
from ..decorators import require_user


warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")

WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "is_active"},
    required_on_create={"name"},
)


@warehouses_bp.get("")
@require_user
def list_warehouses_route():
    active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
    warehouses = inventory_service.list_warehouses(active_only=active_only)
    return {"items": [w.to_dict() for w in warehouses], "count": len(warehouses)}, 200


@warehouses_bp.post("")
@require_user
def create_warehouse_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        warehouse = inventory_service.create_warehouse(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return warehouse.to_dict(), 201


@warehouses_bp.put("/<int:warehouse_id>")
@require_user
def update_warehouse_route(warehouse_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        warehouse = inventory_service.update_warehouse(warehouse_id=warehouse_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return warehouse.to_dict(), 200


@warehouses_bp.post("/movement")
@require_user
def create_movement_route():
    """
    Apply a stock movement (IN / OUT / ADJUST).

    ADJUST sets the product's stock to quantity (absolute), it is not a delta.
    """
    payload = request.get_json(silent=True) or {}

    try:
        command = parse_stock_movement(payload, user_id=g.user_id)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        movement = run_with_retry(
            lambda: inventory_service.process_stock_movement(command),
            attempts=current_app.config["SALE_RETRY_ATTEMPTS"],
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process stock movement")
        return jsonify({"error": "Internal server error"}), 500

    return {
        "message": "Stock movement processed successfully",
        "movement": movement.to_dict(),
        "product": movement.product.to_dict(),
    }, 201


@warehouses_bp.get("/movements")
@require_user
def list_movements_route():
    """
    List ledger rows, newest first.

    Query params: product_id, warehouse_id, sale_id, since, until, limit
    """
    try:
        since = parse_iso_datetime(request.args.get("since"))
        until = parse_iso_datetime(request.args.get("until"))
    except ValueError:
        return {"error": "since/until must be ISO-8601 datetimes"}, 400

    max_limit = current_app.config["MOVEMENT_LIST_LIMIT"]
    limit = request.args.get("limit", default=max_limit, type=int)
    limit = max(1, min(limit, max_limit))

    movements = inventory_service.list_stock_movements(
        product_id=request.args.get("product_id", type=int),
        warehouse_id=request.args.get("warehouse_id", type=int),
        sale_id=request.args.get("sale_id", type=int),
        since=since,
        until=until,
        limit=limit,
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}, 200
