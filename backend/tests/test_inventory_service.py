# Overview: Pytest coverage for manual stock write-offs and product row locking.

import pytest

from shopledger.models import Product, ProductHistory
from shopledger.services import inventory_service, products_service
from shopledger.services.history_service import list_for_product
from shopledger.validation import InsufficientStockError, NotFoundError, ProductNotFoundError, ValidationError


class TestAdjustStock:

    def test_write_off_reduces_stock_and_logs_scalars(self, db_session, make_product):
        product = make_product()

        updated = inventory_service.adjust_stock(product_id=product["id"], reduce_by=3, note="Broken in storage")

        assert updated["quantity"] == 7
        entry = list_for_product(product["id"])[0]
        assert entry["action"] == "stock_removed"
        assert entry["field_name"] == "quantity"
        assert entry["old_value"] == "10"
        assert entry["new_value"] == "7"
        assert entry["note"] == "Broken in storage"

    def test_write_off_of_entire_stock_is_allowed(self, db_session, make_product):
        product = make_product()

        updated = inventory_service.adjust_stock(product_id=product["id"], reduce_by="10")

        assert updated["quantity"] == 0

    def test_insufficient_stock_is_rejected_without_change(self, db_session, make_product):
        product = make_product()

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.adjust_stock(product_id=product["id"], reduce_by=15)

        assert exc.value.details == {
            "product_id": product["id"],
            "product_name": "Ceramic Mug",
            "available": 10,
            "requested": 15,
        }
        assert "Ceramic Mug" in str(exc.value)
        assert db_session.get(Product, product["id"]).quantity == 10
        assert db_session.query(ProductHistory).filter_by(action="stock_removed").count() == 0

    @pytest.mark.parametrize("reduce_by", [0, -2, None, "", "abc", 1.5, 100000])
    def test_invalid_quantity_is_validation_error(self, db_session, make_product, reduce_by):
        product = make_product()

        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product_id=product["id"], reduce_by=reduce_by)

    def test_note_length_is_capped(self, db_session, make_product):
        product = make_product()

        with pytest.raises(ValidationError) as exc:
            inventory_service.adjust_stock(product_id=product["id"], reduce_by=1, note="x" * 501)
        assert exc.value.field == "note"

    def test_deleted_or_missing_product_is_not_found(self, db_session, make_product):
        product = make_product()
        products_service.soft_delete_product(product["id"])

        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(product_id=product["id"], reduce_by=1)
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(product_id=999999, reduce_by=1)


class TestLockProducts:

    def test_returns_products_keyed_by_id(self, db_session, make_product):
        a = make_product(name="Bowl")
        b = make_product(name="Plate")

        products = inventory_service.lock_products([b["id"], a["id"], b["id"]])

        assert sorted(products) == sorted([a["id"], b["id"]])
        db_session.rollback()

    def test_missing_or_deleted_products_raise(self, db_session, make_product):
        product = make_product()
        products_service.soft_delete_product(product["id"])

        with pytest.raises(ProductNotFoundError) as exc:
            inventory_service.lock_products([product["id"]])
        assert exc.value.product_id == product["id"]

        assert product["id"] in inventory_service.lock_products([product["id"]], require_active=False)
        db_session.rollback()
