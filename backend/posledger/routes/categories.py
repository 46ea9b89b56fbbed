# Overview: Flask API routes for product categories.

from flask import Blueprint, request

from ..services import products_service
from ..validation import ConflictError
from ..decorators import require_user


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_user
def list_categories_route():
    categories = products_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}, 200


@categories_bp.post("")
@require_user
def create_category_route():
    payload = request.get_json(silent=True) or {}
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return {"error": "name is required"}, 400
    if len(name.strip()) > 128:
        return {"error": "name exceeds max length 128"}, 400

    try:
        category = products_service.create_category(name=name)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return category.to_dict(), 201
