# Overview: Pytest coverage for product create/update/soft-delete lifecycle and change diffing.

from decimal import Decimal

import pytest

from shopledger.models import Product, ProductHistory
from shopledger.services import orders_service, products_service
from shopledger.services.history_service import list_for_product
from shopledger.services.products_service import changed_fields, normalize_field_value
from shopledger.validation import ConflictError, NotFoundError, ValidationError


def _history(db_session, product_id):
    return (
        db_session.query(ProductHistory)
        .filter_by(product_id=product_id)
        .order_by(ProductHistory.id.asc())
        .all()
    )


def _full_payload(product: dict, **overrides) -> dict:
    payload = {k: product[k] for k in (
        "name", "price", "cost_price", "quantity", "description", "barcode", "photo_url",
    )}
    payload.update(overrides)
    return payload


class TestCreateProduct:

    def test_create_logs_created_snapshot(self, db_session, make_product):
        product = make_product(cost_price="12.50", barcode="4860001234567")

        assert product["price"] == "20.00"
        assert product["quantity"] == 10
        assert product["is_deleted"] is False

        entries = list_for_product(product["id"])
        assert len(entries) == 1
        assert entries[0]["action"] == "created"
        assert entries[0]["old_value"] is None
        assert entries[0]["new_value"] == {
            "name": "Ceramic Mug",
            "price": "20.00",
            "cost_price": "12.50",
            "quantity": 10,
            "description": None,
            "barcode": "4860001234567",
            "photo_url": None,
        }

    def test_blank_optionals_are_absent_and_quantity_defaults_to_zero(self, db_session):
        product = products_service.create_product({
            "name": "  Tea Set  ",
            "price": 45,
            "cost_price": "",
            "quantity": "",
            "description": "   ",
        })

        assert product["name"] == "Tea Set"
        assert product["cost_price"] is None
        assert product["description"] is None
        assert product["quantity"] == 0

    @pytest.mark.parametrize("payload, field", [
        ({"name": "A", "price": 10}, "name"),
        ({"price": 10}, "name"),
        ({"name": "Lamp"}, "price"),
        ({"name": "Lamp", "price": -1}, "price"),
        ({"name": "Lamp", "price": "100000.00"}, "price"),
        ({"name": "Lamp", "price": "abc"}, "price"),
        ({"name": "Lamp", "price": 10, "cost_price": 10}, "cost_price"),
        ({"name": "Lamp", "price": 10, "quantity": -1}, "quantity"),
        ({"name": "Lamp", "price": 10, "quantity": 100000}, "quantity"),
        ({"name": "Lamp", "price": 10, "quantity": 2.5}, "quantity"),
        ({"name": "Lamp", "price": 10, "barcode": "9" * 51}, "barcode"),
        ({"name": "Lamp", "price": 10, "description": "x" * 2001}, "description"),
        ({"name": "Lamp", "price": 10, "photo_url": "not a url"}, "photo_url"),
        ({"name": "Lamp", "price": 10, "sku": "L-1"}, "sku"),
    ])
    def test_validation_rejects_without_writing(self, db_session, payload, field):
        with pytest.raises(ValidationError) as exc:
            products_service.create_product(payload)

        assert exc.value.field == field
        assert db_session.query(Product).count() == 0
        assert db_session.query(ProductHistory).count() == 0


class TestUpdateProduct:

    def test_identical_payload_writes_no_history(self, db_session, make_product):
        product = make_product(cost_price="12.50")

        # Same values in different shapes: 20 vs "20.00", "" vs None, padded text
        products_service.update_product(product["id"], {
            "name": " Ceramic Mug ",
            "price": 20,
            "cost_price": "12.5",
            "quantity": "10",
            "description": "",
            "barcode": None,
        })

        assert [e.action for e in _history(db_session, product["id"])] == ["created"]

    def test_single_field_change_logs_one_entry(self, db_session, make_product):
        product = make_product()

        updated = products_service.update_product(product["id"], _full_payload(product, price="24.99"))

        assert updated["price"] == "24.99"
        entries = _history(db_session, product["id"])
        assert [e.action for e in entries] == ["created", "updated"]

        entry = list_for_product(product["id"])[0]
        assert entry["field_name"] == "price"
        assert entry["old_value"]["price"] == "20.00"
        assert entry["new_value"]["price"] == "24.99"
        assert entry["old_value"]["name"] == entry["new_value"]["name"] == "Ceramic Mug"

    def test_multiple_changes_are_comma_joined_in_field_order(self, db_session, make_product):
        product = make_product()

        products_service.update_product(
            product["id"], _full_payload(product, quantity=12, name="Ceramic Mug XL"),
        )

        entry = list_for_product(product["id"])[0]
        assert entry["field_name"] == "name,quantity"

    def test_update_validates_like_create(self, db_session, make_product):
        product = make_product()

        with pytest.raises(ValidationError):
            products_service.update_product(product["id"], _full_payload(product, cost_price="30.00"))

        assert db_session.get(Product, product["id"]).cost_price is None

    def test_update_missing_or_deleted_product_is_not_found(self, db_session, make_product):
        product = make_product()
        products_service.soft_delete_product(product["id"])

        with pytest.raises(NotFoundError):
            products_service.update_product(product["id"], _full_payload(product, price=30))
        with pytest.raises(NotFoundError):
            products_service.update_product(999999, _full_payload(product))


class TestChangeDiff:

    @pytest.mark.parametrize("old, new, numeric", [
        (12, "12.0", True),
        (Decimal("12.00"), 12, True),
        ("", None, False),
        (None, "   ", True),
        ("Mug ", " Mug", False),
    ])
    def test_equivalent_values_normalize_equal(self, old, new, numeric):
        assert normalize_field_value(old, numeric) == normalize_field_value(new, numeric)

    def test_changed_fields_reports_only_real_changes(self):
        old = {"name": "Mug", "price": Decimal("20.00"), "cost_price": None, "quantity": 10,
               "description": None, "barcode": None, "photo_url": None}
        new = dict(old, price="20", cost_price="", quantity=9, barcode="123")

        assert changed_fields(old, new) == ["quantity", "barcode"]


class TestSoftDeleteLifecycle:

    def test_soft_delete_hides_product_without_history(self, db_session, make_product):
        product = make_product()

        products_service.soft_delete_product(product["id"])

        assert products_service.list_products()["count"] == 0
        with pytest.raises(NotFoundError):
            products_service.get_product(product["id"])
        deleted = products_service.get_product(product["id"], deleted=True)
        assert deleted["is_deleted"] is True
        assert [e.action for e in _history(db_session, product["id"])] == ["created"]

    def test_soft_delete_twice_is_not_found(self, db_session, make_product):
        product = make_product()
        products_service.soft_delete_product(product["id"])

        with pytest.raises(NotFoundError):
            products_service.soft_delete_product(product["id"])

    def test_restore_round_trip_keeps_fields(self, db_session, make_product):
        product = make_product(cost_price="9.99", description="Hand made")

        products_service.soft_delete_product(product["id"])
        restored = products_service.restore_product(product["id"])

        for key in ("name", "price", "cost_price", "quantity", "description", "barcode", "photo_url"):
            assert restored[key] == product[key]
        assert restored["is_deleted"] is False
        assert products_service.list_products()["count"] == 1

        latest = list_for_product(product["id"])[0]
        assert latest["action"] == "restored"
        assert latest["note"] == "Product restored"
        assert latest["old_value"] is None and latest["new_value"] is None

    def test_restore_active_product_is_not_found(self, db_session, make_product):
        product = make_product()

        with pytest.raises(NotFoundError):
            products_service.restore_product(product["id"])

    def test_listing_deleted_products(self, db_session, make_product):
        keep = make_product(name="Keep Me")
        gone = make_product(name="Gone Soon")
        products_service.soft_delete_product(gone["id"])

        active_ids = [p["id"] for p in products_service.list_products()["items"]]
        deleted_ids = [p["id"] for p in products_service.list_products(deleted=True)["items"]]
        assert active_ids == [keep["id"]]
        assert deleted_ids == [gone["id"]]


class TestPermanentDelete:

    def test_active_product_cannot_be_permanently_deleted(self, db_session, make_product):
        product = make_product()

        with pytest.raises(NotFoundError):
            products_service.permanently_delete_product(product["id"])

        assert db_session.get(Product, product["id"]) is not None
        assert len(_history(db_session, product["id"])) == 1

    def test_permanent_delete_removes_product_and_history(self, db_session, make_product):
        product = make_product()
        products_service.soft_delete_product(product["id"])

        products_service.permanently_delete_product(product["id"])

        assert db_session.get(Product, product["id"]) is None
        assert db_session.query(ProductHistory).filter_by(product_id=product["id"]).count() == 0

    def test_product_on_an_order_cannot_be_permanently_deleted(self, db_session, make_product, make_order):
        product = make_product()
        make_order((product, 1))
        products_service.soft_delete_product(product["id"])

        with pytest.raises(ConflictError):
            products_service.permanently_delete_product(product["id"])

        assert db_session.get(Product, product["id"]) is not None

    def test_soft_deleted_product_still_resolves_on_old_orders(self, db_session, make_product, make_order):
        product = make_product(photo_url="https://cdn.example.com/mug.jpg")
        order = make_order((product, 2))

        products_service.soft_delete_product(product["id"])

        item = orders_service.get_order(order["id"])["items"][0]
        assert item["product_name"] == "Ceramic Mug"
        assert item["product_photo_url"] == "https://cdn.example.com/mug.jpg"
