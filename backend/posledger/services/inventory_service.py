# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/posledger/services/inventory_service.py

from __future__ import annotations

import threading
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..commands import StockMovementCommand
from ..errors import (
    InsufficientStock,
    ProductNotFound,
    WarehouseNotFound,
)
from ..extensions import db
from ..models import Product, StockMovement, StockMovementType, Warehouse
from ..time_utils import utcnow
from ..validation import ConflictError
from .concurrency import check_cancelled, lock_for_update, transaction_scope
"""
Stock Ledger Invariants (authoritative)

Model:
- StockMovement rows are the append-only ledger; Product.stock_quantity is the
  running balance cached from it.
- Replaying the ledger in creation order (id ascending) from zero reproduces
  stock_quantity: IN adds, OUT subtracts, ADJUST sets the absolute value.
- stock is global per product. The warehouse is recorded on every movement
  but does not partition the balance.

Write path:
- apply_stock_effect() is the only function that writes stock_quantity. Both
  process_stock_movement() and the sale orchestrator go through it.
- It must run inside transaction_scope() against a product loaded with
  lock_for_update().
- An OUT that would take stock negative is rejected before any mutation.

Cost:
- An IN with a positive cost updates Product.cost_cents (latest inbound cost).
- Every movement snapshots cost_at_time_cents: the supplied positive cost, else
  the product's cost at that moment.
"""


def load_product(product_id: int, *, lock: bool = False, line_index: int | None = None) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id, line_index=line_index)
    return product


def load_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise WarehouseNotFound(warehouse_id)
    return warehouse


def apply_stock_effect(
    product: Product,
    *,
    movement_type: StockMovementType,
    quantity: int,
    warehouse_id: int,
    user_id: str,
    cost_cents: int = 0,
    note: str = "",
    sale_id: int | None = None,
    line_index: int | None = None,
) -> StockMovement:
    """
    Apply one movement to a locked product and append its ledger row.

    Does not flush or commit; the caller's transaction_scope() owns that.
    """
    if movement_type == StockMovementType.OUT and quantity > product.stock_quantity:
        raise InsufficientStock(
            product.id,
            product.name,
            available=product.stock_quantity,
            requested=quantity,
            line_index=line_index,
        )

    resolved_cost = cost_cents if cost_cents and cost_cents > 0 else product.cost_cents

    movement = StockMovement(
        product_id=product.id,
        warehouse_id=warehouse_id,
        type=movement_type,
        quantity=quantity,
        cost_at_time_cents=resolved_cost,
        note=note or "",
        created_by=user_id,
        created_at=utcnow(),
        sale_id=sale_id,
    )

    if movement_type == StockMovementType.IN:
        product.stock_quantity += quantity
        if cost_cents and cost_cents > 0:
            product.cost_cents = cost_cents
    elif movement_type == StockMovementType.OUT:
        product.stock_quantity -= quantity
    else:
        product.stock_quantity = quantity

    db.session.add(movement)
    return movement


def process_stock_movement(
    command: StockMovementCommand,
    *,
    cancel: threading.Event | None = None,
) -> StockMovement:
    """
    Apply a manual IN / OUT / ADJUST movement as one atomic write.

    Raises:
        ProductNotFound, WarehouseNotFound: unknown ids
        InsufficientStock: OUT larger than the current global balance
        ConcurrencyConflict, TransientStoreFailure: store-level race or timeout
        OperationCancelled: cancel was set before commit
    """
    operation = "Stock movement"
    with transaction_scope(operation, cancel=cancel):
        product = load_product(command.product_id, lock=True)
        check_cancelled(cancel, operation)
        load_warehouse(command.warehouse_id)
        check_cancelled(cancel, operation)

        before = product.stock_quantity
        movement = apply_stock_effect(
            product,
            movement_type=command.type,
            quantity=command.quantity,
            warehouse_id=command.warehouse_id,
            user_id=command.user_id,
            cost_cents=command.cost_cents,
            note=command.note,
        )

    current_app.logger.info(
        "Stock movement applied: id=%s product_id=%s type=%s quantity=%s stock %s -> %s",
        movement.id, product.id, command.type.value, command.quantity, before, product.stock_quantity,
    )
    return movement


def check_stock_availability(product_id: int, quantity: int) -> bool:
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        return False
    return product.stock_quantity >= quantity


def list_stock_movements(
    *,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    sale_id: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Ledger rows, newest first. since/until are inclusive."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if warehouse_id is not None:
        q = q.filter(StockMovement.warehouse_id == warehouse_id)
    if sale_id is not None:
        q = q.filter(StockMovement.sale_id == sale_id)
    if since is not None:
        q = q.filter(StockMovement.created_at >= since)
    if until is not None:
        q = q.filter(StockMovement.created_at <= until)

    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()


def replay_ledger(movements) -> int:
    """Balance obtained by applying movements in order from zero."""
    balance = 0
    for m in movements:
        if m.type == StockMovementType.IN:
            balance += m.quantity
        elif m.type == StockMovementType.OUT:
            balance -= m.quantity
        else:
            balance = m.quantity
    return balance


def verify_stock_balance(product_id: int) -> dict:
    """Compare the cached running balance with a full replay of the ledger."""
    product = load_product(product_id)
    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
    ledger_balance = replay_ledger(movements)
    return {
        "product_id": product.id,
        "sku": product.sku,
        "stock_quantity": product.stock_quantity,
        "ledger_balance": ledger_balance,
        "movement_count": len(movements),
        "consistent": ledger_balance == product.stock_quantity,
    }


def verify_all_balances() -> list[dict]:
    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    return [verify_stock_balance(pid) for pid in product_ids]


# Warehouse Management

WAREHOUSE_MUTABLE_FIELDS = {"name", "address", "is_active"}


def list_warehouses(*, active_only: bool = False) -> list[Warehouse]:
    q = db.session.query(Warehouse)
    if active_only:
        q = q.filter(Warehouse.is_active.is_(True))
    return q.order_by(Warehouse.id.asc()).all()


def first_active_warehouse() -> Warehouse | None:
    return (
        db.session.query(Warehouse)
        .filter(Warehouse.is_active.is_(True))
        .order_by(Warehouse.id.asc())
        .first()
    )


def create_warehouse(*, patch: dict) -> Warehouse:
    if db.session.query(Warehouse).filter(Warehouse.name == patch.get("name")).first():
        raise ConflictError("Warehouse name already exists.")

    warehouse = Warehouse()
    for k, v in patch.items():
        if k in WAREHOUSE_MUTABLE_FIELDS:
            setattr(warehouse, k, v)

    db.session.add(warehouse)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Warehouse name already exists.")
    return warehouse


def update_warehouse(*, warehouse_id: int, patch: dict) -> Warehouse:
    warehouse = load_warehouse(warehouse_id)
    if "name" in patch and patch["name"] != warehouse.name:
        if db.session.query(Warehouse).filter(Warehouse.name == patch["name"]).first():
            raise ConflictError("Warehouse name already exists.")

    for k, v in patch.items():
        if k in WAREHOUSE_MUTABLE_FIELDS:
            setattr(warehouse, k, v)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Warehouse name already exists.")
    return warehouse
