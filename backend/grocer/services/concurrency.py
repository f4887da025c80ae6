# Overview: Service-layer concurrency helpers; transaction retry and per-key serialization.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StockBusy
from ..extensions import db


class RetryableConflict(Exception):
    """Raised inside a retried operation when a unique key collided at flush."""


RETRYABLE_ERRORS = (OperationalError, StaleDataError, RetryableConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    populate_existing() refreshes rows already sitting in the identity map.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation as one transaction, retrying concurrency failures.

    Any exception rolls the session back, so nothing from a failed attempt
    is ever committed. OperationalError (locks), StaleDataError (optimistic
    version conflicts) and RetryableConflict are retried with exponential
    backoff; everything else propagates after the rollback.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


class KeyedLocks:
    """
    In-process lock registry keyed by (kind, id) tuples.

    hold() acquires every requested key in sorted order so two callers that
    need overlapping keys cannot deadlock. Locks are re-entrant per thread.

    Each entry counts its holders and waiters; the entry is dropped when the
    count reaches zero so the registry does not grow with every sale id.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: tuple) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: tuple) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: tuple, timeout: float | None = None):
        ordered = sorted(set(keys), key=lambda k: (k[0], str(k[1])))
        acquired = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                ok = lock.acquire(timeout=timeout) if timeout is not None else lock.acquire()
                if not ok:
                    self._checkin(key)
                    raise StockBusy(ordered)
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


stock_locks = KeyedLocks()


def product_key(product_id: int) -> tuple:
    return ("product", product_id)


def sale_key(sale_id: int) -> tuple:
    return ("sale", sale_id)


def sale_number_key(tenant_id: int) -> tuple:
    return ("sale-number", tenant_id)


@contextmanager
def hold_locks(*keys: tuple):
    """Hold registry locks with the configured STOCK_LOCK_TIMEOUT_SECONDS."""
    timeout = current_app.config.get("STOCK_LOCK_TIMEOUT_SECONDS")
    with stock_locks.hold(*keys, timeout=timeout):
        yield
