# Overview: Threaded tests for the stock write discipline against a file-backed database.

"""
Concurrency tests.

SQLite :memory: shares one connection across threads, so these tests use a
temporary database file to get real lock contention between writers.
"""
import os
import tempfile
import threading
import unittest

from posledger import create_app
from posledger.commands import SaleCommand, SaleLineCommand, StockMovementCommand
from posledger.errors import InsufficientStock, LedgerError
from posledger.extensions import db
from posledger.models import Customer, Product, Sale, StockMovement, StockMovementType, Warehouse
from posledger.services import inventory_service, sales_service


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STORE_LOCK_TIMEOUT_SECONDS": 15,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            warehouse = Warehouse(name="Concurrency Warehouse", address="")
            customer = Customer(name="Concurrent Customer")
            product = Product(sku="CONCUR-1", name="Concurrent Product", price_cents=1000)
            db.session.add_all([warehouse, customer, product])
            db.session.commit()
            self.warehouse_id = warehouse.id
            self.customer_id = customer.id
            self.product_id = product.id

            inventory_service.process_stock_movement(StockMovementCommand(
                product_id=self.product_id,
                warehouse_id=self.warehouse_id,
                type=StockMovementType.IN,
                quantity=5,
                cost_cents=400,
                note="Seed inventory",
                user_id="seed",
            ))

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        barrier = threading.Barrier(count)
        results = []
        lock = threading.Lock()

        def worker(n):
            with self.app.app_context():
                try:
                    barrier.wait()
                    outcome = target(n)
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_sales_cannot_oversell(self):
        def sell(n):
            return sales_service.attempt_sale(SaleCommand(
                customer_id=self.customer_id,
                items=(SaleLineCommand(product_id=self.product_id, quantity=5, unit_price_cents=1000),),
                user_id=f"cashier-{n}",
            ))

        results = self._run_threads(sell, 2)

        self.assertEqual(len(results), 2)
        self.assertFalse([r for r in results if isinstance(r, Exception)])
        succeeded = [r for r in results if r.ok]
        failed = [r for r in results if not r.ok]
        self.assertEqual(len(succeeded), 1)
        self.assertEqual(len(failed), 1)
        self.assertIsInstance(failed[0].error, LedgerError)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 0)
            self.assertEqual(db.session.query(Sale).count(), 1)
            out_rows = db.session.query(StockMovement).filter_by(type=StockMovementType.OUT).count()
            self.assertEqual(out_rows, 1)
            self.assertTrue(inventory_service.verify_stock_balance(self.product_id)["consistent"])

    def test_loser_sees_insufficient_stock_after_winner_commits(self):
        def sell(n):
            return sales_service.attempt_sale(SaleCommand(
                customer_id=self.customer_id,
                items=(SaleLineCommand(product_id=self.product_id, quantity=3, unit_price_cents=1000),),
                user_id=f"cashier-{n}",
            ))

        results = self._run_threads(sell, 2)

        failed = [r for r in results if not isinstance(r, Exception) and not r.ok]
        self.assertEqual(len(failed), 1)
        self.assertIsInstance(failed[0].error, InsufficientStock)
        self.assertEqual(failed[0].error.details["available"], 2)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 2)

    def test_concurrent_receipts_are_all_applied(self):
        def receive(n):
            return inventory_service.process_stock_movement(StockMovementCommand(
                product_id=self.product_id,
                warehouse_id=self.warehouse_id,
                type=StockMovementType.IN,
                quantity=1,
                user_id=f"clerk-{n}",
            )).id

        results = self._run_threads(receive, 8)

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        self.assertEqual(len(set(results)), 8)

        with self.app.app_context():
            report = inventory_service.verify_stock_balance(self.product_id)
            self.assertEqual(report["stock_quantity"], 13)
            self.assertTrue(report["consistent"])


if __name__ == "__main__":
    unittest.main()
