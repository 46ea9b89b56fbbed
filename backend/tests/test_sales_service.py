"""
Sale orchestrator tests: totals, atomic rejection, cost snapshots and
the read-after-write receipt.
"""

import re
import threading
from datetime import datetime

import pytest

from posledger.commands import SaleCommand, SaleLineCommand, StockMovementCommand
from posledger.errors import (
    CustomerNotFound,
    InsufficientStock,
    NoActiveWarehouse,
    OperationCancelled,
    ProductInactive,
    ProductNotFound,
    SaleNotFound,
    WarehouseNotFound,
)
from posledger.models import Product, Sale, SaleItem, SaleStatus, StockMovement, StockMovementType, Warehouse
from posledger.services import sales_service
from posledger.services.inventory_service import process_stock_movement
from posledger.validation import ValidationError


def _line(product, quantity, unit_price_cents=10000, discount_cents=0):
    return SaleLineCommand(
        product_id=product.id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        discount_cents=discount_cents,
    )


def _sale(customer, *lines, warehouse_id=None, discount_cents=0, notes=None):
    return SaleCommand(
        customer_id=customer.id,
        items=tuple(lines),
        user_id="cashier-7",
        warehouse_id=warehouse_id,
        discount_cents=discount_cents,
        notes=notes,
    )


def _counts(db_session):
    return (
        db_session.query(Sale).count(),
        db_session.query(SaleItem).count(),
        db_session.query(StockMovement).count(),
    )


def test_totals_are_computed_from_lines(db_session, warehouse, customer, make_product):
    product = make_product("Desk Lamp", stock=10)

    receipt = sales_service.process_sale(
        _sale(customer, _line(product, 2, 10000, 1000), discount_cents=500, notes="  gift  ")
    )

    assert receipt.subtotal_cents == 19000
    assert receipt.discount_cents == 500
    assert receipt.final_cents == 18500
    assert receipt.customer_name == "Jane Buyer"
    assert len(receipt.items) == 1
    line = receipt.items[0]
    assert line.line_number == 1
    assert line.product_name == "Desk Lamp"
    assert line.line_total_cents == 19000

    assert db_session.get(Product, product.id).stock_quantity == 8


def test_sale_persists_header_items_and_out_movements(db_session, warehouse, customer, make_product):
    a = make_product(stock=10, cost_cents=400)
    b = make_product(stock=4, cost_cents=900)

    receipt = sales_service.process_sale(_sale(customer, _line(a, 3, 1500), _line(b, 1, 2500)))

    sale = sales_service.get_sale(receipt.sale_id)
    assert sale.status == SaleStatus.COMPLETED
    assert sale.warehouse_id == warehouse.id
    assert sale.user_id == "cashier-7"
    assert [i.line_number for i in sale.items] == [1, 2]
    assert sale.total_cents == 3 * 1500 + 2500
    assert sale.final_cents == sale.total_cents

    movements = (
        db_session.query(StockMovement)
        .filter(StockMovement.sale_id == sale.id)
        .order_by(StockMovement.id.asc())
        .all()
    )
    assert [(m.product_id, m.type, m.quantity) for m in movements] == [
        (a.id, StockMovementType.OUT, 3),
        (b.id, StockMovementType.OUT, 1),
    ]
    assert all(m.note == f"Sale {sale.sale_number}" for m in movements)
    assert [m.cost_at_time_cents for m in movements] == [400, 900]


def test_sale_number_format(db_session, warehouse, customer, make_product):
    product = make_product(stock=1)

    receipt = sales_service.process_sale(_sale(customer, _line(product, 1)))

    assert re.fullmatch(r"SALE-\d{8}-[0-9A-F]{8}", receipt.sale_number)
    assert receipt.sale_number[5:13] == receipt.sale_date.strftime("%Y%m%d")


def test_generate_sale_number_uses_given_date():
    number = sales_service.generate_sale_number(datetime(2026, 3, 7, 23, 59))
    assert number.startswith("SALE-20260307-")
    assert len(number) == len("SALE-20260307-") + 8


def test_failure_on_later_line_leaves_everything_unchanged(db_session, warehouse, customer, make_product):
    first = make_product(stock=10)
    second = make_product(stock=10)
    short = make_product("Scarce Item", stock=1)
    before = _counts(db_session)

    with pytest.raises(InsufficientStock) as exc_info:
        sales_service.process_sale(
            _sale(customer, _line(first, 2), _line(second, 3), _line(short, 5))
        )

    assert exc_info.value.details["line_index"] == 2
    assert exc_info.value.details["available"] == 1
    assert exc_info.value.details["requested"] == 5
    assert _counts(db_session) == before
    assert db_session.get(Product, first.id).stock_quantity == 10
    assert db_session.get(Product, second.id).stock_quantity == 10
    assert db_session.get(Product, short.id).stock_quantity == 1


def test_unknown_product_line_is_rejected(db_session, warehouse, customer, make_product):
    product = make_product(stock=10)
    before = _counts(db_session)

    with pytest.raises(ProductNotFound) as exc_info:
        sales_service.process_sale(
            _sale(customer, _line(product, 1), SaleLineCommand(product_id=424242, quantity=1, unit_price_cents=100))
        )

    assert exc_info.value.details["line_index"] == 1
    assert _counts(db_session) == before
    assert db_session.get(Product, product.id).stock_quantity == 10


def test_inactive_product_is_rejected(db_session, warehouse, customer, make_product):
    product = make_product("Retired Mug", stock=10, is_active=False)

    with pytest.raises(ProductInactive) as exc_info:
        sales_service.process_sale(_sale(customer, _line(product, 1)))

    assert exc_info.value.details["product_id"] == product.id
    assert db_session.get(Product, product.id).stock_quantity == 10


def test_lines_for_same_product_are_checked_together(db_session, warehouse, customer, make_product):
    product = make_product(stock=5)
    before = _counts(db_session)

    with pytest.raises(InsufficientStock) as exc_info:
        sales_service.process_sale(_sale(customer, _line(product, 3), _line(product, 3)))

    assert exc_info.value.details["requested"] == 6
    assert _counts(db_session) == before
    assert db_session.get(Product, product.id).stock_quantity == 5


def test_two_lines_for_same_product_within_stock(db_session, warehouse, customer, make_product):
    product = make_product(stock=5)

    receipt = sales_service.process_sale(_sale(customer, _line(product, 2), _line(product, 3)))

    assert [i.quantity for i in receipt.items] == [2, 3]
    assert db_session.get(Product, product.id).stock_quantity == 0


def test_selling_exact_stock_reaches_zero(db_session, warehouse, customer, make_product):
    product = make_product(stock=4)

    sales_service.process_sale(_sale(customer, _line(product, 4)))

    assert db_session.get(Product, product.id).stock_quantity == 0


def test_no_active_warehouse(db_session, customer, make_product):
    product = make_product(stock=5)
    for wh in db_session.query(Warehouse).all():
        wh.is_active = False
    db_session.commit()

    with pytest.raises(NoActiveWarehouse) as exc_info:
        sales_service.process_sale(_sale(customer, _line(product, 1)))

    assert exc_info.value.status_code == 400
    assert db_session.get(Product, product.id).stock_quantity == 5


def test_explicit_warehouse_is_used(db_session, warehouse, customer, make_product):
    product = make_product(stock=5)
    backroom = Warehouse(name="Back Room", address="")
    db_session.add(backroom)
    db_session.commit()

    receipt = sales_service.process_sale(_sale(customer, _line(product, 1), warehouse_id=backroom.id))

    assert sales_service.get_sale(receipt.sale_id).warehouse_id == backroom.id
    movement = db_session.query(StockMovement).filter_by(sale_id=receipt.sale_id).one()
    assert movement.warehouse_id == backroom.id


def test_unknown_warehouse_is_rejected(db_session, warehouse, customer, make_product):
    product = make_product(stock=5)

    with pytest.raises(WarehouseNotFound):
        sales_service.process_sale(_sale(customer, _line(product, 1), warehouse_id=777))


def test_unknown_customer_is_rejected(db_session, warehouse, make_product):
    product = make_product(stock=5)

    with pytest.raises(CustomerNotFound):
        sales_service.process_sale(SaleCommand(
            customer_id=555,
            items=(_line(product, 1),),
            user_id="cashier-7",
        ))

    assert db_session.get(Product, product.id).stock_quantity == 5


def test_cost_snapshot_survives_later_cost_change(db_session, warehouse, customer, make_product):
    product = make_product(stock=10, cost_cents=50)

    receipt = sales_service.process_sale(_sale(customer, _line(product, 2)))

    process_stock_movement(StockMovementCommand(
        product_id=product.id,
        warehouse_id=warehouse.id,
        type=StockMovementType.IN,
        quantity=5,
        cost_cents=80,
        user_id="clerk-1",
    ))
    assert db_session.get(Product, product.id).cost_cents == 80

    item = sales_service.get_sale(receipt.sale_id).items[0]
    assert item.cost_at_time_cents == 50


def test_cancelled_sale_persists_nothing(db_session, warehouse, customer, make_product):
    product = make_product(stock=5)
    before = _counts(db_session)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        sales_service.process_sale(_sale(customer, _line(product, 1)), cancel=cancel)

    assert _counts(db_session) == before
    assert db_session.get(Product, product.id).stock_quantity == 5


def test_attempt_sale_returns_outcome(db_session, warehouse, customer, make_product):
    product = make_product(stock=2)

    ok = sales_service.attempt_sale(_sale(customer, _line(product, 1)))
    assert ok.ok
    assert ok.error is None
    assert ok.receipt.final_cents == 10000

    rejected = sales_service.attempt_sale(_sale(customer, _line(product, 5)))
    assert not rejected.ok
    assert rejected.receipt is None
    assert isinstance(rejected.error, InsufficientStock)


def test_receipt_read_back_matches(db_session, warehouse, customer, make_product):
    product = make_product(stock=10)

    receipt = sales_service.process_sale(
        _sale(customer, _line(product, 3, 2000, 500), discount_cents=1000)
    )
    reread = sales_service.get_sale_receipt(receipt.sale_id)

    assert reread == receipt
    assert reread.final_cents == 3 * 2000 - 500 - 1000


def test_stored_final_matches_line_totals(db_session, warehouse, customer, make_product):
    a = make_product(stock=10)
    b = make_product(stock=10)

    receipt = sales_service.process_sale(
        _sale(customer, _line(a, 2, 1250, 300), _line(b, 1, 999), discount_cents=450)
    )
    sale = sales_service.get_sale(receipt.sale_id)

    line_sum = sum(item.line_total_cents for item in sale.items)
    assert sale.total_cents == line_sum
    assert sale.final_cents == line_sum - sale.discount_cents
    assert sale.final_cents == 2 * 1250 - 300 + 999 - 450


def test_receipt_to_dict_serializes_dates(db_session, warehouse, customer, make_product):
    product = make_product(stock=1)

    data = sales_service.process_sale(_sale(customer, _line(product, 1))).to_dict()

    assert data["sale_date"].endswith("Z")
    assert data["items"][0]["quantity"] == 1


def test_get_sale_unknown(db_session):
    with pytest.raises(SaleNotFound):
        sales_service.get_sale(31337)


def test_list_sales_newest_first(db_session, warehouse, customer, make_product):
    product = make_product(stock=10)
    first = sales_service.process_sale(_sale(customer, _line(product, 1)))
    second = sales_service.process_sale(_sale(customer, _line(product, 1)))

    sales = sales_service.list_sales()
    assert [s.id for s in sales] == [second.sale_id, first.sale_id]
    assert sales_service.list_sales(status=SaleStatus.CANCELLED) == []


def test_ledger_stays_consistent_after_sales(db_session, warehouse, customer, make_product):
    from posledger.services.inventory_service import verify_stock_balance

    product = make_product(stock=10)
    sales_service.process_sale(_sale(customer, _line(product, 4)))
    with pytest.raises(InsufficientStock):
        sales_service.process_sale(_sale(customer, _line(product, 7)))
    sales_service.process_sale(_sale(customer, _line(product, 6)))

    report = verify_stock_balance(product.id)
    assert report["stock_quantity"] == 0
    assert report["consistent"] is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quantity": 0, "unit_price_cents": 100},
        {"quantity": 1, "unit_price_cents": 0},
        {"quantity": 1, "unit_price_cents": 100, "discount_cents": -1},
    ],
)
def test_sale_line_command_validation(kwargs):
    with pytest.raises(ValidationError):
        SaleLineCommand(product_id=1, **kwargs)


def test_sale_command_requires_items():
    with pytest.raises(ValidationError):
        SaleCommand(customer_id=1, items=(), user_id="cashier-7")


def test_explicit_warehouse_zero_is_not_defaulted(db_session, warehouse, customer, make_product):
    product = make_product(stock=5)

    with pytest.raises(WarehouseNotFound) as exc_info:
        sales_service.process_sale(_sale(customer, _line(product, 1), warehouse_id=0))

    assert exc_info.value.details["warehouse_id"] == 0
    assert db_session.get(Product, product.id).stock_quantity == 5
