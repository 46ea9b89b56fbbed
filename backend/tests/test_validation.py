import pytest

from posledger.models import Product, StockMovementType
from posledger.routes.products import PRODUCT_CREATE_POLICY
from posledger.validation import (
    MAX_PRICE_CENTS,
    ValidationError,
    enforce_rules_product,
    parse_sale,
    parse_stock_movement,
    validate_payload,
)


def test_parse_stock_movement_normalizes_type_and_note():
    cmd = parse_stock_movement(
        {"product_id": "3", "warehouse_id": 1, "type": " out ", "quantity": 2, "note": "  broken  "},
        user_id="clerk-1",
    )
    assert cmd.product_id == 3
    assert cmd.type == StockMovementType.OUT
    assert cmd.note == "broken"
    assert cmd.cost_cents == 0
    assert cmd.user_id == "clerk-1"


def test_parse_stock_movement_rejects_long_note():
    with pytest.raises(ValidationError):
        parse_stock_movement(
            {"product_id": 1, "warehouse_id": 1, "type": "IN", "quantity": 1, "note": "x" * 256},
            user_id="clerk-1",
        )


def test_parse_sale_builds_lines_and_combined_quantities():
    cmd = parse_sale(
        {
            "customer_id": 7,
            "notes": " rush ",
            "items": [
                {"product_id": 1, "quantity": 2, "unit_price_cents": 500},
                {"product_id": 2, "quantity": 1, "unit_price_cents": 900, "discount_cents": 100},
                {"product_id": 1, "quantity": 3, "unit_price_cents": 500},
            ],
        },
        user_id="cashier-1",
    )
    assert len(cmd.items) == 3
    assert cmd.warehouse_id is None
    assert cmd.notes == "rush"
    assert cmd.requested_quantities == {1: 5, 2: 1}


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {"customer_id": 1, "items": []},
        {"customer_id": 0, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 1}]},
        {"customer_id": 1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 1, "total": 5}]},
        {"customer_id": 1, "discount_cents": -1, "items": [{"product_id": 1, "quantity": 1, "unit_price_cents": 1}]},
    ],
)
def test_parse_sale_rejects_bad_payloads(payload):
    with pytest.raises(ValidationError):
        parse_sale(payload, user_id="cashier-1")


def test_product_payload_validation(app):
    patch = validate_payload(
        model=Product,
        payload={"sku": " A-1 ", "name": "Thing", "price_cents": "1200"},
        policy=PRODUCT_CREATE_POLICY,
        partial=False,
    )
    assert patch == {"sku": "A-1", "name": "Thing", "price_cents": 1200}

    with pytest.raises(ValidationError, match="Missing required fields"):
        validate_payload(model=Product, payload={"sku": "A-1"}, policy=PRODUCT_CREATE_POLICY, partial=False)

    with pytest.raises(ValidationError):
        enforce_rules_product({"price_cents": MAX_PRICE_CENTS + 1})


@pytest.mark.parametrize(
    "raw, expected",
    [(True, True), (False, False), ("false", False), ("TRUE", True), ("0", False), ("1", True), (0, False)],
)
def test_boolean_fields_parse_explicitly(app, raw, expected):
    patch = validate_payload(
        model=Product, payload={"is_active": raw}, policy=PRODUCT_CREATE_POLICY, partial=True
    )
    assert patch["is_active"] is expected


@pytest.mark.parametrize("raw", ["no", "", "yes please", 2, 1.0, [True]])
def test_boolean_fields_reject_other_values(app, raw):
    with pytest.raises(ValidationError, match="is_active must be a boolean"):
        validate_payload(model=Product, payload={"is_active": raw}, policy=PRODUCT_CREATE_POLICY, partial=True)
