# backend/posledger/services/products_service.py
"""
Products Service

Catalogue maintenance only. Stock never changes here: new products start at
zero and stock_quantity / cost_cents are excluded from PRODUCT_MUTABLE_FIELDS,
so the running balance is written solely by the movement processor and the
sale orchestrator.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import CategoryNotFound, ProductInUse, ProductNotFound
from ..extensions import db
from ..models import Category, Product, SaleItem, StockMovement
from ..validation import ConflictError
from .concurrency import transaction_scope

PRODUCT_CREATE_FIELDS = {
    "sku", "name", "description", "category_id", "price_cents", "cost_cents", "min_stock_level", "is_active",
}
PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "category_id", "price_cents", "min_stock_level", "is_active"}


def apply_product_patch(p: Product, patch: dict, allowed: set[str] = PRODUCT_MUTABLE_FIELDS) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise ProductNotFound(product_id)
    return p


def list_products(
    *,
    active_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional pagination.

    Args:
        active_only: Exclude inactive products
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc())
    if active_only:
        base_query = base_query.filter(Product.is_active.is_(True))

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _ensure_sku_available(sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("SKU already exists.")


def _ensure_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise CategoryNotFound(category_id)


def create_product(*, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: If SKU already exists
        CategoryNotFound: If category_id names no category
    """
    sku = patch.get("sku")
    if sku is None:
        raise ValueError("sku is required")
    _ensure_sku_available(sku)
    _ensure_category(patch.get("category_id"))

    p = Product(stock_quantity=0)
    apply_product_patch(p, patch, PRODUCT_CREATE_FIELDS)

    db.session.add(p)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists.")
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update catalogue fields of a product.

    Runs as a write scope: a sale or movement that committed since the
    product was read fails the version check and surfaces as
    ConcurrencyConflict instead of a raw StaleDataError.

    Raises:
        ProductNotFound: If the product does not exist
        CategoryNotFound: If category_id names no category
        ConflictError: If the new SKU is taken
        ConcurrencyConflict: If the product changed underneath the update
    """
    with transaction_scope("Product update"):
        p = get_product(product_id)

        if "sku" in patch and patch["sku"] != p.sku:
            _ensure_sku_available(patch["sku"], exclude_id=p.id)
        _ensure_category(patch.get("category_id"))

        apply_product_patch(p, patch)
    return p


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product that nothing references.

    Products with sale items or stock movements are kept for history; deactivate
    them instead.
    """
    with transaction_scope("Product delete"):
        p = get_product(product_id)

        referenced = (
            db.session.query(SaleItem.id).filter(SaleItem.product_id == p.id).first() is not None
            or db.session.query(StockMovement.id).filter(StockMovement.product_id == p.id).first() is not None
        )
        if referenced:
            raise ProductInUse(p.id)

        db.session.delete(p)


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()


def create_category(*, name: str) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValueError("name is required")
    if db.session.query(Category).filter(Category.name == name).first() is not None:
        raise ConflictError("Category already exists.")

    category = Category(name=name)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists.")
    return category
