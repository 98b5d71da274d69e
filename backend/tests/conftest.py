"""
Pytest fixtures for shopledger backend tests.

Provides an in-memory database, per-test table wipes, a test client and
small factories for products and orders.
"""

import pytest

from shopledger import create_app
from shopledger.config import TestConfig
from shopledger.extensions import db
from shopledger.services import orders_service, products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product through the service (so it gets its `created` entry)."""
    def _make(**overrides):
        payload = {
            "name": "Ceramic Mug",
            "price": "20.00",
            "quantity": 10,
        }
        payload.update(overrides)
        return products_service.create_product(payload)
    return _make


@pytest.fixture(scope='function')
def customer():
    return {
        "fb_name": "Nino Beridze",
        "recipient_name": "Nino Beridze",
        "phone": "555123456",
        "address": "Tbilisi, Rustaveli Ave 12",
        "comment": "Call before delivery",
    }


@pytest.fixture(scope='function')
def make_order(db_session, customer):
    """Factory: place an order for [(product, quantity), ...]."""
    def _make(*lines, unit_price="20.00", courier_price="5.00"):
        items = [
            {
                "product_id": product["id"],
                "quantity": quantity,
                "unit_price": unit_price,
                "courier_price": courier_price,
            }
            for product, quantity in lines
        ]
        return orders_service.create_order(dict(customer), items)
    return _make
