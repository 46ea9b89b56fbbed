# Overview: Flask API routes for customers.

from flask import Blueprint, request, jsonify

from ..errors import LedgerError
from ..models import Customer
from ..services import customer_service
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, ConflictError
from ..decorators import require_user


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "is_active"},
    required_on_create={"name"},
)


@customers_bp.get("")
@require_user
def list_customers_route():
    active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
    customers = customer_service.list_customers(active_only=active_only, search=request.args.get("q"))
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}, 200


@customers_bp.get("/<int:customer_id>")
@require_user
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return customer.to_dict(), 200


@customers_bp.post("")
@require_user
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        customer = customer_service.create_customer(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return customer.to_dict(), 201


@customers_bp.put("/<int:customer_id>")
@require_user
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        customer = customer_service.update_customer(customer_id=customer_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return customer.to_dict(), 200


@customers_bp.delete("/<int:customer_id>")
@require_user
def delete_customer_route(customer_id: int):
    """Delete a customer with no sales. Customers on receipts must be deactivated instead."""
    try:
        customer_service.delete_customer(customer_id=customer_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"ok": True}, 200
