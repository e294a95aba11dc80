"""
Pytest fixtures for the billing backend tests.

Provides the application, a clean in-memory database per test, and a
stock item factory.
"""

from datetime import datetime

import pytest

from billing import create_app
from billing.extensions import db
from billing.models import StockItem
from billing.services import notification_service


# Fixed instant used by time-gated tests (UTC-naive, like the models)
T0 = datetime(2026, 10, 18, 6, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BILLING_TIMEZONE': 'Asia/Kolkata',
        'ENFORCE_STOCK_FLOOR': True,
        'CANCELLATION_WINDOW_SECONDS': 300,
        'SHIFT_LOCK_HOURS': 12,
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
        notification_service.clear_subscribers()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        notification_service.clear_subscribers()


@pytest.fixture(scope='function')
def make_stock(db_session):
    """Factory for StockItem rows (defaults: Rs 100.00 at 18% GST, 10 in stock)."""
    def _make(name="Paneer Block", *, quantity=10, price_cents=10000, gst_rate_bps=1800,
              unit="kg", hsn_code="0406", threshold=2, category="Dairy"):
        item = StockItem(
            name=name,
            unit=unit,
            quantity=quantity,
            price_cents=price_cents,
            gst_rate_bps=gst_rate_bps,
            hsn_code=hsn_code,
            threshold=threshold,
            category=category,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


def franchise_headers(franchise_id: str = "FR-001") -> dict:
    """Helper to create tenant headers."""
    return {'X-Franchise-Id': franchise_id}
