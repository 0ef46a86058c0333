"""
Threaded concurrency tests against a file-backed SQLite database.

The in-memory database used by the other tests is shared through a single
connection, so real lock contention needs a file.
"""
import os
import tempfile
import threading
import unittest

from stockledger import create_app
from stockledger.errors import InsufficientStock, ReturnExceedsSold
from stockledger.extensions import db
from stockledger.models import DocumentSeries, Location, Product
from stockledger.services import movement_service, return_service, series_service, stock_service


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LEDGER_RETRY_ATTEMPTS": 5,
            "LEDGER_RETRY_BACKOFF_BASE": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            warehouse = Location(type="warehouse", name="Concurrency Warehouse", is_active=True)
            db.session.add(warehouse)
            db.session.add(Product(sku="CONCUR-1", name="Concurrent Product",
                                   price_b2c_cents=1000, price_b2b_cents=800, is_active=True))
            for scope, code in series_service.DEFAULT_SERIES_CODES.items():
                db.session.add(DocumentSeries(code=code, name=code, scope=scope, prefix=code,
                                              next_number=1, padding=6, is_active=True))
            db.session.commit()
            self.warehouse_id = warehouse.id

            movement_service.record_movement(
                "purchase", [{"sku": "CONCUR-1", "quantity": 5}], to_location_id=self.warehouse_id,
            )

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, args_list):
        results = []
        lock = threading.Lock()

        def worker(*args):
            with self.app.app_context():
                try:
                    value = target(*args)
                    with lock:
                        results.append(("ok", value))
                except Exception as exc:
                    with lock:
                        results.append(("error", exc))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_reference_allocation_concurrency(self):
        def issue():
            return series_service.issue_reference(series_service.SCOPE_SALE_B2C).series_number

        results = self._run_threads(issue, [() for _ in range(10)])

        errors = [value for status, value in results if status == "error"]
        numbers = sorted(value for status, value in results if status == "ok")
        self.assertFalse(errors)
        self.assertEqual(numbers, list(range(1, 11)))

        with self.app.app_context():
            series = db.session.query(DocumentSeries).filter_by(code="B2C").one()
            self.assertEqual(series.next_number, 11)

    def test_concurrent_sales_do_not_oversell(self):
        def sell():
            movement = movement_service.record_movement(
                "b2c_sale", [{"sku": "CONCUR-1", "quantity": 5}], from_location_id=self.warehouse_id,
            )
            return movement.reference

        results = self._run_threads(sell, [(), ()])

        successes = [value for status, value in results if status == "ok"]
        failures = [value for status, value in results if status == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InsufficientStock)

        with self.app.app_context():
            self.assertEqual(stock_service.get_balance("CONCUR-1", self.warehouse_id), 0)
            # the failed sale must not have consumed a reference number
            series = db.session.query(DocumentSeries).filter_by(code="B2C").one()
            self.assertEqual(series.next_number, 2)

    def test_concurrent_returns_respect_cap(self):
        with self.app.app_context():
            sale = movement_service.record_movement(
                "b2c_sale", [{"sku": "CONCUR-1", "quantity": 2}], from_location_id=self.warehouse_id,
            )
            sale_id = sale.id

        def give_back():
            movement = return_service.record_return(sale_id, [{"sku": "CONCUR-1", "quantity": 2}])
            return movement.id

        results = self._run_threads(give_back, [(), ()])

        failures = [value for status, value in results if status == "error"]
        self.assertEqual(len([r for r in results if r[0] == "ok"]), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], ReturnExceedsSold)

        with self.app.app_context():
            self.assertEqual(stock_service.get_balance("CONCUR-1", self.warehouse_id), 5)
            self.assertEqual(stock_service.verify_projection(), [])


if __name__ == "__main__":
    unittest.main()
