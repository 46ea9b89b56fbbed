"""
Sales Service - point-of-sale checkout against the stock ledger

A checkout is one atomic unit: sale header, items, stock debits and the OUT
movements that record them either all commit or none do.

Flow (process_sale):
1. Open transaction_scope() (write lock taken up front).
2. Resolve the warehouse: the requested one, else the first active one.
3. Validate pass, read-only: every line's product exists, is active and has
   enough global stock for the combined quantity of its lines.
4. Commit pass: lock the products (ascending id), build the sale, and for each
   line in caller order snapshot cost, debit stock through
   apply_stock_effect() and append an OUT movement linked to the sale.
5. Totals are computed here, never taken from the caller.
6. Commit, reload, and return a receipt.

Any failure in 2-6 rolls the whole scope back before the error propagates.
"""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..commands import SaleCommand
from ..errors import (
    CustomerNotFound,
    InsufficientStock,
    LedgerError,
    NoActiveWarehouse,
    ProductInactive,
    SaleNotFound,
)
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem, SaleStatus, StockMovementType, Warehouse
from ..time_utils import to_utc_z, utcnow
from .concurrency import check_cancelled, transaction_scope
from .inventory_service import apply_stock_effect, first_active_warehouse, load_product, load_warehouse


def generate_sale_number(now: datetime | None = None) -> str:
    """SALE-<yyyyMMdd UTC>-<8 uppercase hex>. Best-effort unique; sales.id is the key."""
    now = now or utcnow()
    return f"SALE-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


@dataclass(frozen=True)
class ReceiptLine:
    line_number: int
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    discount_cents: int
    line_total_cents: int

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass(frozen=True)
class SaleReceipt:
    sale_id: int
    sale_number: str
    sale_date: datetime
    customer_name: str
    subtotal_cents: int
    discount_cents: int
    final_cents: int
    items: tuple[ReceiptLine, ...] = field(default_factory=tuple)
    notes: str | None = None

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "sale_number": self.sale_number,
            "sale_date": to_utc_z(self.sale_date),
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "final_cents": self.final_cents,
            "items": [line.to_dict() for line in self.items],
            "notes": self.notes,
        }


@dataclass(frozen=True)
class SaleOutcome:
    """Either a receipt or the error that rejected the sale; never both."""
    receipt: SaleReceipt | None = None
    error: LedgerError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_receipt(sale: Sale) -> SaleReceipt:
    return SaleReceipt(
        sale_id=sale.id,
        sale_number=sale.sale_number,
        sale_date=sale.sale_date,
        customer_name=sale.customer.name if sale.customer else "",
        subtotal_cents=sale.total_cents,
        discount_cents=sale.discount_cents,
        final_cents=sale.final_cents,
        items=tuple(
            ReceiptLine(
                line_number=item.line_number,
                product_id=item.product_id,
                product_name=item.product.name if item.product else "",
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_cents=item.discount_cents,
                line_total_cents=item.line_total_cents,
            )
            for item in sale.items
        ),
        notes=sale.notes,
    )


def _resolve_warehouse(warehouse_id: int | None) -> Warehouse:
    if warehouse_id is not None:
        return load_warehouse(warehouse_id)
    warehouse = first_active_warehouse()
    if warehouse is None:
        raise NoActiveWarehouse()
    return warehouse


def _ensure_sellable(product: Product, requested: int, line_index: int) -> None:
    if not product.is_active:
        raise ProductInactive(product.id, product.name, line_index=line_index)
    if product.stock_quantity < requested:
        raise InsufficientStock(
            product.id,
            product.name,
            available=product.stock_quantity,
            requested=requested,
            line_index=line_index,
        )


def _validate_lines(command: SaleCommand, cancel: threading.Event | None) -> None:
    """Read-only pass; nothing is mutated if any line is invalid."""
    for i, line in enumerate(command.items):
        check_cancelled(cancel, "Sale")
        product = load_product(line.product_id, line_index=i)
        _ensure_sellable(product, command.requested_quantities[line.product_id], i)


def _lock_products(command: SaleCommand, cancel: threading.Event | None) -> dict[int, Product]:
    """Lock every product of the sale, ascending id, and re-check it under the lock."""
    first_line = {}
    for i, line in enumerate(command.items):
        first_line.setdefault(line.product_id, i)

    locked: dict[int, Product] = {}
    for product_id in sorted(command.requested_quantities):
        check_cancelled(cancel, "Sale")
        index = first_line[product_id]
        product = load_product(product_id, lock=True, line_index=index)
        _ensure_sellable(product, command.requested_quantities[product_id], index)
        locked[product_id] = product
    return locked


def process_sale(command: SaleCommand, *, cancel: threading.Event | None = None) -> SaleReceipt:
    """
    Process a checkout atomically and return its receipt.

    Raises:
        CustomerNotFound, ProductNotFound, WarehouseNotFound, NoActiveWarehouse
        ProductInactive, InsufficientStock
        ConcurrencyConflict, TransientStoreFailure
        OperationCancelled
    """
    try:
        with transaction_scope("Sale", cancel=cancel):
            warehouse = _resolve_warehouse(command.warehouse_id)
            customer = db.session.get(Customer, command.customer_id)
            if customer is None:
                raise CustomerNotFound(command.customer_id)

            _validate_lines(command, cancel)
            products = _lock_products(command, cancel)

            now = utcnow()
            sale = Sale(
                sale_number=generate_sale_number(now),
                sale_date=now,
                status=SaleStatus.COMPLETED,
                customer_id=customer.id,
                warehouse_id=warehouse.id,
                user_id=command.user_id,
                discount_cents=command.discount_cents,
                notes=command.notes,
            )
            db.session.add(sale)
            db.session.flush()  # sale.id is needed on the movements

            total_cents = 0
            for i, line in enumerate(command.items):
                check_cancelled(cancel, "Sale")
                product = products[line.product_id]

                line_total = line.unit_price_cents * line.quantity - line.discount_cents
                total_cents += line_total

                sale.items.append(SaleItem(
                    line_number=i + 1,
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    discount_cents=line.discount_cents,
                    line_total_cents=line_total,
                    cost_at_time_cents=product.cost_cents,
                ))

                apply_stock_effect(
                    product,
                    movement_type=StockMovementType.OUT,
                    quantity=line.quantity,
                    warehouse_id=warehouse.id,
                    user_id=command.user_id,
                    note=f"Sale {sale.sale_number}",
                    sale_id=sale.id,
                    line_index=i,
                )

            sale.total_cents = total_cents
            sale.final_cents = total_cents - command.discount_cents
            sale_id = sale.id
    except LedgerError as exc:
        current_app.logger.warning(
            "Sale rejected and rolled back: %s details=%s", exc.message, exc.details
        )
        raise

    saved = get_sale(sale_id)
    current_app.logger.info(
        "Sale committed: id=%s number=%s lines=%d final_cents=%s",
        saved.id, saved.sale_number, len(saved.items), saved.final_cents,
    )
    return build_receipt(saved)


def attempt_sale(command: SaleCommand, *, cancel: threading.Event | None = None) -> SaleOutcome:
    """process_sale() as an explicit result: ledger errors become SaleOutcome.error."""
    try:
        return SaleOutcome(receipt=process_sale(command, cancel=cancel))
    except LedgerError as exc:
        return SaleOutcome(error=exc)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def get_sale_receipt(sale_id: int) -> SaleReceipt:
    return build_receipt(get_sale(sale_id))


def list_sales(*, limit: int = 100, status: SaleStatus | None = None) -> list[Sale]:
    q = db.session.query(Sale)
    if status is not None:
        q = q.filter(Sale.status == status)
    return q.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()
