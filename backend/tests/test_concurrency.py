# Overview: Pytest coverage for keyed locks, transaction retry and threaded stock contention.

"""
Concurrency Tests

The threaded tests run against a file-backed SQLite database so every
worker thread gets its own connection; the in-memory database used by the
rest of the suite shares one connection across threads.
"""

import threading

import pytest
from sqlalchemy.orm.exc import StaleDataError

from grocer import create_app
from grocer.errors import InsufficientStock, StockBusy
from grocer.extensions import db
from grocer.models import PaymentMethod, Sale
from grocer.services import products_service, sales_service, stock_service, tenant_service
from grocer.services.auth_service import CASHIER, create_default_roles, create_user
from grocer.services.concurrency import KeyedLocks, run_with_retry


class TestKeyedLocks:

    def test_timeout_raises_stock_busy(self):
        locks = KeyedLocks()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(("product", 1)):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            held.wait(5)
            with pytest.raises(StockBusy) as exc_info:
                with locks.hold(("product", 2), ("product", 1), timeout=0.05):
                    pass
            assert exc_info.value.details == {"locks": ["product:1", "product:2"]}
        finally:
            release.set()
            thread.join(5)

    def test_partial_acquisition_is_released(self):
        locks = KeyedLocks()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(("product", 2)):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        with pytest.raises(StockBusy):
            with locks.hold(("product", 1), ("product", 2), timeout=0.05):
                pass
        release.set()
        thread.join(5)

        # product 1 was acquired and must have been released again
        with locks.hold(("product", 1), timeout=0.05):
            pass

    def test_reentrant_in_same_thread(self):
        locks = KeyedLocks()
        with locks.hold(("sale", 1)):
            with locks.hold(("sale", 1), ("product", 3), timeout=0.05):
                pass
            assert len(locks) == 1
        assert len(locks) == 0

    def test_released_keys_leave_the_registry(self):
        locks = KeyedLocks()
        for sale_id in range(50):
            with locks.hold(("sale", sale_id), ("product", 1)):
                pass
        assert len(locks) == 0

    def test_failed_acquire_leaves_no_entry(self):
        locks = KeyedLocks()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(("product", 7)):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        with pytest.raises(StockBusy):
            with locks.hold(("product", 7), timeout=0.05):
                pass
        assert len(locks) == 1
        release.set()
        thread.join(5)
        assert len(locks) == 0


class TestRunWithRetry:

    def test_retries_stale_data_then_succeeds(self, app):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(op, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, app):
        calls = []

        def op():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(op, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_domain_errors_are_not_retried(self, app):
        calls = []

        def op():
            calls.append(1)
            raise InsufficientStock(1, "Apples", 5, 1)

        with pytest.raises(InsufficientStock):
            run_with_retry(op, backoff_base=0)
        assert len(calls) == 1


# =============================================================================
# THREADED CONTENTION (file-backed SQLite)
# =============================================================================


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'contention.sqlite3'}",
        'STOCK_LOCK_TIMEOUT_SECONDS': 30,
    })
    with app.app_context():
        db.create_all()
        create_default_roles()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def shop(file_app):
    """Tenant, cashier and one product with 5 units; returns plain ids."""
    with file_app.app_context():
        tenant = tenant_service.create_tenant("Contention Mart")
        cashier = create_user("contention_cashier", "cashier@contention.local", tenant_id=tenant.id, roles=[CASHIER])
        product = products_service.create_product(
            tenant.id, None, patch={"name": "Eggs (dozen)", "sku": "EGG-012", "price_cents": 450},
            initial_stock=5,
        )
        return {"tenant_id": tenant.id, "user_id": cashier.id, "product_id": product.id}


def _run_workers(file_app, count, target):
    barrier = threading.Barrier(count)
    results = []
    results_lock = threading.Lock()

    def worker():
        with file_app.app_context():
            barrier.wait()
            try:
                outcome = ("ok", target())
            except Exception as exc:  # recorded for the assertions below
                outcome = ("error", exc)
            finally:
                db.session.remove()
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(60)
    return results


class TestThreadedContention:

    def test_no_oversell(self, file_app, shop):
        def buy_one():
            sale = sales_service.create_sale(
                shop["tenant_id"],
                shop["user_id"],
                [{"product_id": shop["product_id"], "quantity": 1, "unit_price_cents": 450}],
                PaymentMethod.CASH,
            )
            return sale.sale_number

        results = _run_workers(file_app, 10, buy_one)

        succeeded = [value for status, value in results if status == "ok"]
        failed = [value for status, value in results if status == "error"]
        assert len(succeeded) == 5
        assert len(failed) == 5
        assert all(isinstance(exc, InsufficientStock) for exc in failed)
        assert len(set(succeeded)) == 5

        with file_app.app_context():
            report = stock_service.reconcile_product(shop["tenant_id"], shop["product_id"])
            assert report["stock_quantity"] == 0
            assert report["consistent"] is True
            assert db.session.query(Sale).count() == 5

    def test_concurrent_adjustments_keep_ledger_consistent(self, file_app, shop):
        targets = iter(range(20, 30))
        targets_lock = threading.Lock()

        def adjust():
            with targets_lock:
                new_quantity = next(targets)
            return stock_service.adjust_stock(shop["tenant_id"], None, shop["product_id"], new_quantity)

        results = _run_workers(file_app, 10, adjust)

        assert all(status == "ok" for status, _ in results)
        with file_app.app_context():
            report = stock_service.reconcile_product(shop["tenant_id"], shop["product_id"])
            assert report["consistent"] is True
            assert 20 <= report["stock_quantity"] < 30
