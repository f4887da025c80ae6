# Overview: Pytest coverage for sale number generation.

import logging
import re
from datetime import datetime

import pytest

from conftest import stock_of
from grocer.errors import DuplicateIdentifier
from grocer.extensions import db
from grocer.models import PaymentMethod, Sale
from grocer.services import sale_number_service, sales_service


NOW = datetime(2026, 10, 19, 9, 30)


class ScriptedRng:
    """randrange() stand-in that replays a fixed sequence, repeating the last value."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def randrange(self, stop):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


def _taken(tenant, *numbers):
    for number in numbers:
        db.session.add(Sale(tenant_id=tenant.id, sale_number=number, payment_method=PaymentMethod.CASH,
                            created_at=NOW, updated_at=NOW))
    db.session.commit()


def test_format():
    assert sale_number_service.format_sale_number("20261019", "007") == "SALE-20261019-007"
    assert sale_number_service.random_suffix(ScriptedRng(7)) == "007"
    assert re.fullmatch(r"[0-9A-F]{8}", sale_number_service.fallback_suffix())


def test_first_free_candidate_is_used(tenant_a):
    number = sale_number_service.generate_sale_number(tenant_a.id, now=NOW, rng=ScriptedRng(42))
    assert number == "SALE-20261019-042"


def test_collision_redraws(tenant_a):
    _taken(tenant_a, "SALE-20261019-001", "SALE-20261019-002")
    rng = ScriptedRng(1, 2, 1, 3)

    number = sale_number_service.generate_sale_number(tenant_a.id, now=NOW, rng=rng)

    assert number == "SALE-20261019-003"
    assert rng.calls == 4


def test_numbers_are_unique_per_tenant_only(tenant_a, tenant_b):
    _taken(tenant_a, "SALE-20261019-005")
    number = sale_number_service.generate_sale_number(tenant_b.id, now=NOW, rng=ScriptedRng(5))
    assert number == "SALE-20261019-005"


def test_fallback_after_bounded_retries(caplog, tenant_a):
    _taken(tenant_a, "SALE-20261019-009")
    rng = ScriptedRng(9)

    with caplog.at_level(logging.WARNING):
        number = sale_number_service.generate_sale_number(tenant_a.id, now=NOW, max_attempts=3, rng=rng)

    assert re.fullmatch(r"SALE-20261019-[0-9A-F]{8}", number)
    assert rng.calls == 4
    assert "Sale number space exhausted" in caplog.text


def test_max_attempts_from_config(app, monkeypatch, tenant_a):
    monkeypatch.setitem(app.config, "SALE_NUMBER_MAX_ATTEMPTS", 2)
    _taken(tenant_a, "SALE-20261019-009")
    rng = ScriptedRng(9)

    sale_number_service.generate_sale_number(tenant_a.id, now=NOW, rng=rng)

    assert rng.calls == 3


def test_fallback_collision_raises(monkeypatch, tenant_a):
    _taken(tenant_a, "SALE-20261019-009", "SALE-20261019-DEADBEEF")
    monkeypatch.setattr(sale_number_service, "fallback_suffix", lambda: "DEADBEEF")

    with pytest.raises(DuplicateIdentifier):
        sale_number_service.generate_sale_number(tenant_a.id, now=NOW, max_attempts=1, rng=ScriptedRng(9))


def test_sequential_sales_get_distinct_numbers(tenant_a, cashier_a, make_product):
    product = make_product(tenant_a, "RCE-001", name="Rice 1kg", stock=40)

    numbers = {
        sales_service.create_sale(
            tenant_a.id,
            cashier_a.id,
            [{"product_id": product.id, "quantity": 1, "unit_price_cents": 250}],
            PaymentMethod.CASH,
            now=NOW,
        ).sale_number
        for _ in range(40)
    }

    assert len(numbers) == 40
    assert all(n.startswith("SALE-20261019-") for n in numbers)
    assert stock_of(product.id) == 0


def test_unique_violation_at_flush_becomes_duplicate_identifier(monkeypatch, tenant_a, cashier_a, apples):
    _taken(tenant_a, "SALE-20261019-123")
    monkeypatch.setattr(sales_service, "generate_sale_number", lambda tenant_id, now=None: "SALE-20261019-123")
    monkeypatch.setattr("grocer.services.concurrency.time.sleep", lambda seconds: None)

    with pytest.raises(DuplicateIdentifier):
        sales_service.create_sale(
            tenant_a.id,
            cashier_a.id,
            [{"product_id": apples.id, "quantity": 1, "unit_price_cents": 250}],
            PaymentMethod.CASH,
            now=NOW,
        )

    assert stock_of(apples.id) == 10
    assert db.session.query(Sale).filter_by(tenant_id=tenant_a.id).count() == 1
