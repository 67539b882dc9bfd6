"""
Pytest fixtures for StockSync backend tests.

Provides an in-memory app (document store + cache binds), a fresh signed-in
service graph per test, and helpers to seed products, locations, parties
and invoices.
"""

import pytest

from stocksync import create_app
from stocksync.container import EXTENSION_KEY, build_services
from stocksync.extensions import db
from stocksync.models import StoredDocument

TEST_TENANT = "test-tenant"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_BINDS': {'cache': 'sqlite:///:memory:'},
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TENANT_ID': TEST_TENANT,
        'START_ONLINE': True,
        'COUNTER_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        app.extensions[EXTENSION_KEY].close()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty document store and cache for each test."""
    db.session.query(StoredDocument).delete()
    db.session.commit()
    app.extensions[EXTENSION_KEY].cache.clear()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def services(app, db_session):
    """Fresh service graph, signed in and online."""
    app.extensions[EXTENSION_KEY].close()
    container = build_services(app.config)
    app.extensions[EXTENSION_KEY] = container
    container.connectivity.sign_in("user-1", "Test User")
    yield container
    container.close()


@pytest.fixture(scope='function')
def offline_services(app, db_session):
    """Fresh service graph, signed in while offline (cache only)."""
    app.extensions[EXTENSION_KEY].close()
    config = dict(app.config)
    config['START_ONLINE'] = False
    container = build_services(config)
    app.extensions[EXTENSION_KEY] = container
    container.connectivity.sign_in("user-1", "Test User")
    yield container
    container.close()


@pytest.fixture
def main_store(services):
    """A location with id "main_store"."""
    services.locations.add_location({"name": "Main Store"})
    return "main_store"


@pytest.fixture
def warehouse(services):
    services.locations.add_location({"name": "Warehouse"})
    return "warehouse"


@pytest.fixture
def make_product(services):
    """Factory creating a product; returns its document id."""
    def _make(sku, *, model="Model", brand="Acme", category="Phones", serialized=False, reorder_point=0):
        return services.products.create({
            "sku": sku,
            "model": model,
            "brand": brand,
            "category": category,
            "isSerialized": serialized,
            "reorderPoint": reorder_point,
        })
    return _make


@pytest.fixture
def phone(make_product):
    """A serialized product."""
    return make_product("PH-100", model="Phone 100", serialized=True)


@pytest.fixture
def cable(make_product):
    """A non-serialized product."""
    return make_product("CB-200", model="USB Cable", category="Accessories")


@pytest.fixture
def supplier(services):
    return services.suppliers.create({"name": "Global Supply Co"})


@pytest.fixture
def invoice(services, supplier, phone, cable):
    """Pending purchase invoice: 2 x phone, 3 x cable."""
    return services.purchase_invoices.create({
        "supplierId": supplier,
        "supplierName": "Global Supply Co",
        "invoiceDate": "2025-01-15",
        "items": [
            {"productId": phone, "productName": "Phone 100", "quantity": 2, "unitCostPrice": 118},
            {"productId": cable, "productName": "USB Cable", "quantity": 3, "unitCostPrice": 10},
        ],
    })
