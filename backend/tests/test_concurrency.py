# Overview: Pytest coverage for conflict retries around stock writes.

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from shopledger.models import Product, ProductHistory
from shopledger.services import inventory_service
from shopledger.services.concurrency import run_with_retry


def _stock_removed(db_session, product):
    return (
        db_session.query(ProductHistory)
        .filter(ProductHistory.product_id == product["id"], ProductHistory.action == "stock_removed")
        .all()
    )


def _conflicting_reserve(monkeypatch, failures):
    """Patch reserve_stock to do its work, then raise StaleDataError `failures` times."""
    real_reserve = inventory_service.reserve_stock
    calls = {"count": 0}

    def _reserve(product, quantity, *, note=None):
        calls["count"] += 1
        real_reserve(product, quantity, note=note)
        if calls["count"] <= failures:
            raise StaleDataError("products row was updated by another transaction")
        return product

    monkeypatch.setattr(inventory_service, "reserve_stock", _reserve)
    return calls


class TestStockWriteRetries:

    def test_conflict_on_first_attempt_is_retried_once(self, app, db_session, make_product, monkeypatch):
        product = make_product(quantity=10)
        monkeypatch.setitem(app.config, "DB_RETRY_ATTEMPTS", 3)
        calls = _conflicting_reserve(monkeypatch, failures=1)

        updated = inventory_service.adjust_stock(product_id=product["id"], reduce_by=4)

        assert calls["count"] == 2
        assert updated["quantity"] == 6
        assert db_session.get(Product, product["id"]).quantity == 6
        assert len(_stock_removed(db_session, product)) == 1

    def test_exhausted_retries_roll_back_and_raise(self, app, db_session, make_product, monkeypatch):
        product = make_product(quantity=10)
        monkeypatch.setitem(app.config, "DB_RETRY_ATTEMPTS", 1)
        calls = _conflicting_reserve(monkeypatch, failures=5)

        with pytest.raises(StaleDataError):
            inventory_service.adjust_stock(product_id=product["id"], reduce_by=4)

        assert calls["count"] == 1
        assert db_session.get(Product, product["id"]).quantity == 10
        assert _stock_removed(db_session, product) == []


class TestRunWithRetry:

    def test_operational_error_is_retried(self, app):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return "done"

        with app.app_context():
            assert run_with_retry(_op, attempts=2, backoff_base=0) == "done"
        assert len(calls) == 2

    def test_other_errors_propagate_without_retry(self, app):
        calls = []

        def _op():
            calls.append(1)
            raise KeyError("boom")

        with app.app_context():
            with pytest.raises(KeyError):
                run_with_retry(_op, attempts=3, backoff_base=0)
        assert len(calls) == 1
