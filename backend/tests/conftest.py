"""
Pytest fixtures for posledger backend tests.

Provides an in-memory application, a per-test clean database, and small
factories for warehouses, customers and stocked products.
"""

import pytest

from posledger import create_app
from posledger.commands import StockMovementCommand
from posledger.extensions import db
from posledger.models import Customer, Product, StockMovementType, Warehouse
from posledger.services.inventory_service import process_stock_movement


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def warehouse(db_session):
    wh = Warehouse(name="Main Warehouse", address="1 Dock Road", is_active=True)
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Jane Buyer", email="jane@example.com")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_product(db_session, warehouse):
    """
    Factory: create a product and receive `stock` units through an IN movement
    so the ledger and the cached balance agree from the start.
    """
    counter = {"n": 0}

    def _make(name=None, *, stock=0, price_cents=10000, cost_cents=0, is_active=True, min_stock_level=0):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            price_cents=price_cents,
            cost_cents=0,
            stock_quantity=0,
            min_stock_level=min_stock_level,
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()

        if stock:
            process_stock_movement(StockMovementCommand(
                product_id=product.id,
                warehouse_id=warehouse.id,
                type=StockMovementType.IN,
                quantity=stock,
                cost_cents=cost_cents,
                user_id="tester",
            ))
        elif cost_cents:
            product.cost_cents = cost_cents

        product.is_active = is_active
        db_session.commit()
        return product

    return _make
