# Overview: Flask CLI command groups for bootstrap, ledger inspection, and repair.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, a default warehouse and a walk-in customer.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a few demo products and receive initial stock for them.
#
# Ledger inspection:
# - python -m flask ledger verify [--product-id 1]
#   Replay stock movements and compare with each product's stock_quantity.
# - python -m flask ledger movements --product-id 1 --limit 20
#   Show recent stock movements, newest first.
# - python -m flask ledger low-stock
#   List active products at or below their minimum stock level.

import click
from flask.cli import with_appcontext

from .commands import StockMovementCommand
from .errors import ConflictError, LedgerError
from .extensions import db
from .models import Category, Customer, Product, StockMovementType, Warehouse
from .services import inventory_service, products_service


DEFAULT_WAREHOUSE_NAME = "Main Warehouse"
WALK_IN_CUSTOMER_NAME = "Walk-in Customer"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the ledger database.

    Creates:
    - All tables (if missing)
    - Default warehouse "Main Warehouse" (if no warehouse exists)
    - Walk-in customer (if no customer exists)
    """
    click.echo("START Initializing ledger database...")
    db.create_all()

    warehouse = db.session.query(Warehouse).order_by(Warehouse.id.asc()).first()
    if not warehouse:
        warehouse = Warehouse(name=DEFAULT_WAREHOUSE_NAME, address="", is_active=True)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created default warehouse: {warehouse.name} (ID: {warehouse.id})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")

    customer = db.session.query(Customer).order_by(Customer.id.asc()).first()
    if not customer:
        customer = Customer(name=WALK_IN_CUSTOMER_NAME, is_active=True)
        db.session.add(customer)
        db.session.commit()
        click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")
    else:
        click.echo(f"PASS Using existing customer: {customer.name} (ID: {customer.id})")

    click.echo("DONE Ledger database initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


DEMO_CATEGORY = "Coffee & Brewing"

DEMO_PRODUCTS = [
    # sku, name, price_cents, cost_cents, initial stock
    ("DEMO-COFFEE-1KG", "Coffee Beans 1kg", 2499, 1400, 40),
    ("DEMO-MUG-WHITE", "White Mug", 899, 300, 25),
    ("DEMO-FILTER-100", "Paper Filters (100)", 399, 120, 60),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo products and receive their initial stock through IN movements."""
    warehouse = inventory_service.first_active_warehouse()
    if warehouse is None:
        click.echo("FAIL No active warehouse. Run: python -m flask system init")
        return

    category = db.session.query(Category).filter(Category.name == DEMO_CATEGORY).first()
    if category is None:
        category = products_service.create_category(name=DEMO_CATEGORY)
    category_id = category.id

    for sku, name, price_cents, cost_cents, quantity in DEMO_PRODUCTS:
        try:
            product = products_service.create_product(
                patch={
                    "sku": sku,
                    "name": name,
                    "category_id": category_id,
                    "price_cents": price_cents,
                    "min_stock_level": 5,
                }
            )
        except ConflictError:
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue

        try:
            inventory_service.process_stock_movement(StockMovementCommand(
                product_id=product.id,
                warehouse_id=warehouse.id,
                type=StockMovementType.IN,
                quantity=quantity,
                cost_cents=cost_cents,
                note="Initial stock",
                user_id="system",
            ))
        except LedgerError as e:
            click.echo(f"FAIL Could not receive stock for '{sku}': {e.message}")
            continue

        click.echo(f"PASS Created {sku} with {quantity} units")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_ledger(product_id):
    """Replay the ledger and report products whose stock_quantity disagrees with it."""
    try:
        if product_id is not None:
            results = [inventory_service.verify_stock_balance(product_id)]
        else:
            results = inventory_service.verify_all_balances()
    except LedgerError as e:
        raise click.ClickException(e.message)

    mismatches = [r for r in results if not r["consistent"]]
    for r in mismatches:
        click.echo(
            f"FAIL {r['sku']} (ID: {r['product_id']}): "
            f"stock_quantity={r['stock_quantity']} ledger={r['ledger_balance']} "
            f"movements={r['movement_count']}"
        )

    click.echo(f"Checked {len(results)} products, {len(mismatches)} mismatched.")
    if mismatches:
        raise SystemExit(1)


@ledger_group.command('movements')
@click.option('--product-id', type=int, default=None)
@click.option('--warehouse-id', type=int, default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_movements(product_id, warehouse_id, limit):
    """Show recent stock movements, newest first."""
    movements = inventory_service.list_stock_movements(
        product_id=product_id, warehouse_id=warehouse_id, limit=limit
    )
    if not movements:
        click.echo("No stock movements found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<6} {'When':<22} {'Type':<7} {'Qty':>6} {'Product':<28} {'By'}")
    click.echo("=" * 90)
    for m in movements:
        when = m.created_at.strftime("%Y-%m-%d %H:%M:%S") if m.created_at else "-"
        click.echo(
            f"{m.id:<6} {when:<22} {m.type.value:<7} {m.quantity:>6} "
            f"{(m.product.name if m.product else '-')[:28]:<28} {m.created_by}"
        )
    click.echo("=" * 90 + "\n")


@ledger_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their minimum stock level."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity <= Product.min_stock_level)
        .order_by(Product.name.asc())
        .all()
    )
    if not products:
        click.echo("PASS No products below minimum stock.")
        return

    for p in products:
        click.echo(f"WARN  {p.sku:<20} {p.name:<30} stock={p.stock_quantity} min={p.min_stock_level}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
