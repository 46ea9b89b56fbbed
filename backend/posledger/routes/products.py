# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/posledger/routes/products.py
"""
Product catalogue routes.

Stock is read-only here: stock_quantity cannot be written through these
endpoints and cost_cents only on create. Stock changes go through
/api/warehouses/movement and /api/sales.
"""
from flask import Blueprint, request, jsonify

from ..errors import LedgerError
from ..models import Product
from ..services import products_service
from ..services.inventory_service import check_stock_availability, verify_stock_balance
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_user

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category_id", "price_cents", "cost_cents", "min_stock_level", "is_active",
    },
    required_on_create={"sku", "name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "category_id", "price_cents", "min_stock_level", "is_active"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_user
def list_products():
    """
    List products with optional pagination.

    Query params:
    - active_only: bool (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    return products_service.list_products(active_only=active_only, page=page, per_page=per_page)


@products_bp.get("/<int:product_id>")
@require_user
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return product.to_dict(), 200


@products_bp.post("")
@require_user
def create_product_route():
    """Create a new product with zero stock."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_user
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_user
def delete_product_route(product_id: int):
    """Delete an unreferenced product. Products with history must be deactivated instead."""
    try:
        products_service.delete_product(product_id=product_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"ok": True}, 200


@products_bp.get("/<int:product_id>/availability")
@require_user
def availability_route(product_id: int):
    quantity = request.args.get("quantity", default=1, type=int)
    if quantity is None or quantity <= 0:
        return {"error": "quantity must be > 0"}, 400

    return {
        "product_id": product_id,
        "quantity": quantity,
        "available": check_stock_availability(product_id, quantity),
    }, 200


@products_bp.get("/<int:product_id>/ledger-check")
@require_user
def ledger_check_route(product_id: int):
    """Replay the product's stock ledger and compare it with the cached balance."""
    try:
        return verify_stock_balance(product_id), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
