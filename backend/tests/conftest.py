"""
Pytest fixtures for stock ledger tests.

Provides an in-memory database, a test client and the reference data every
ledger test needs (locations, catalog, series, customers).
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import (
    Accessory,
    Category,
    Customer,
    DocumentSeries,
    Location,
    Product,
    Supplier,
)
from stockledger.services import movement_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF_BASE': 0,
    })

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
def warehouse(db_session):
    loc = Location(type="warehouse", name="Main Warehouse", city="Madrid", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def second_warehouse(db_session):
    loc = Location(type="warehouse", name="North Warehouse", city="Bilbao", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Acme Optics")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def category(db_session):
    c = Category(name="Sunglasses")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def products(db_session, supplier, category):
    """
    X-1: in category, from supplier, B2C 1000 / B2B 800 / cost 500
    Y-1: no category, no supplier, B2C 2000 / B2B 1500 / cost 900
    Z-1: no prices at all
    """
    x = Product(sku="X-1", name="Aviator", price_b2c_cents=1000, price_b2b_cents=800,
                cost_cents=500, supplier_id=supplier.id, is_active=True)
    x.categories.append(category)
    y = Product(sku="Y-1", name="Wayfarer", price_b2c_cents=2000, price_b2b_cents=1500,
                cost_cents=900, is_active=True)
    z = Product(sku="Z-1", name="Sample frame", is_active=True)
    db_session.add_all([x, y, z])
    db_session.commit()
    return {"X-1": x, "Y-1": y, "Z-1": z}


@pytest.fixture(scope='function')
def accessory(db_session):
    a = Accessory(name="Hard case", price_cents=300, cost_cents=100, is_active=True)
    db_session.add(a)
    db_session.commit()
    return a


@pytest.fixture(scope='function')
def series(db_session):
    """One active, year-less series per scope."""
    rows = {}
    for scope, code in (
        ("sale_b2c", "B2C"),
        ("sale_b2b", "B2B"),
        ("return", "DEV"),
        ("deposit", "DEP"),
        ("web", "WEB"),
    ):
        s = DocumentSeries(code=code, name=f"{code} series", scope=scope, prefix=code,
                           year=None, next_number=1, padding=6, is_active=True)
        db_session.add(s)
        rows[scope] = s
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Optica Sol", type="b2b", is_active=True)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def stock(warehouse, products, series):
    """Receive stock into the main warehouse: receive({"X-1": 10})."""
    def _receive(quantities: dict, location_id: int | None = None):
        return movement_service.record_movement(
            "purchase",
            [{"sku": sku, "quantity": qty} for sku, qty in quantities.items()],
            to_location_id=location_id or warehouse.id,
        )
    return _receive
