from posledger.cli import DEMO_PRODUCTS
from posledger.extensions import db
from posledger.models import Category, Customer, Product, StockMovement, Warehouse


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0, first.output
    assert "Created default warehouse" in first.output
    assert "Using existing warehouse" in second.output
    assert db_session.query(Warehouse).count() == 1
    assert db_session.query(Customer).count() == 1


def test_seed_demo_goes_through_ledger(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["system", "init"])

    result = runner.invoke(args=["system", "seed-demo"])

    assert result.exit_code == 0, result.output
    assert db_session.query(Product).count() == len(DEMO_PRODUCTS)
    assert db_session.query(StockMovement).count() == len(DEMO_PRODUCTS)
    assert db_session.query(Category).count() == 1
    assert all(p.category is not None for p in db_session.query(Product).all())

    verify = runner.invoke(args=["ledger", "verify"])
    assert verify.exit_code == 0, verify.output
    assert f"Checked {len(DEMO_PRODUCTS)} products, 0 mismatched." in verify.output


def test_ledger_verify_reports_mismatch(app, db_session, make_product):
    product = make_product(stock=4)
    db.session.execute(
        Product.__table__.update().where(Product.id == product.id).values(stock_quantity=9)
    )
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "verify"])

    assert result.exit_code == 1
    assert f"FAIL {product.sku}" in result.output


def test_low_stock_lists_products_at_minimum(app, db_session, make_product):
    make_product("Almost Gone", stock=2, min_stock_level=2)
    make_product("Plenty", stock=50, min_stock_level=2)

    output = app.test_cli_runner().invoke(args=["ledger", "low-stock"]).output

    assert "Almost Gone" in output
    assert "Plenty" not in output
