"""
Pytest fixtures for boutique backend tests.

Provides an in-memory application, a per-test table wipe, a test client and
a small stocked catalog.
"""

from datetime import datetime

import pytest

from boutique import create_app
from boutique.extensions import db
from boutique.services import catalog_service
from boutique.services import shift_service


# 10:00 store time (UTC in tests) -> Morning shift
MORNING = datetime(2026, 3, 2, 10, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORE_TIMEZONE': 'UTC',
        'TRANSFER_CREDIT_MODE': 'requested',
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
    """Fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.config['TRANSFER_CREDIT_MODE'] = 'requested'

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def dress(db_session):
    """SKU-1 in sizes S/M/L; M has store 10, warehouse 40 at 6500."""
    return catalog_service.create_article({
        "id": "SKU-1",
        "name": "Linen Wrap Dress",
        "category": "Summer Edit",
        "price_cents": 6500,
        "variants": [
            {"size_label": "S", "size_internal": "1", "store_qty": 2, "warehouse_qty": 5},
            {"size_label": "M", "size_internal": "M", "store_qty": 10, "warehouse_qty": 40},
            {"size_label": "L", "size_internal": "3", "store_qty": 0, "warehouse_qty": 0},
        ],
    }, actor="Admin")


@pytest.fixture(scope='function')
def open_shift(db_session):
    """Live Morning shift for cashier Sara."""
    return shift_service.start_shift("Sara", now=MORNING)


@pytest.fixture(scope='function')
def admin_headers():
    return {"X-Operator": "Admin", "X-Operator-Role": "Admin"}


@pytest.fixture(scope='function')
def cashier_headers():
    return {"X-Operator": "Sara", "X-Operator-Role": "Cashier"}


@pytest.fixture(scope='function')
def warehouse_headers():
    return {"X-Operator": "Omar", "X-Operator-Role": "Warehouse"}


@pytest.fixture(scope='function')
def viewer_headers():
    return {"X-Operator": "Guest", "X-Operator-Role": "Viewer"}
