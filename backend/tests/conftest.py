"""
Central pytest configuration for the fulfillment core tests.

This file provides common fixtures, test markers, and setup for both
unit and integration tests.
"""

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

# Test environment (set early so import-time configuration uses it)
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TESTING"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "0"  # Disable rate limiting in tests
os.environ["LOG_TO_FILE"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")

backend_root = Path(__file__).parent.parent  # backend/
sys.path.insert(0, str(backend_root))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from pharmalink.core.config import FulfillmentSettings, PricingPolicy  # noqa: E402
from pharmalink.db.session import Base, make_sessionmaker  # noqa: E402
from pharmalink.domain.entities import Actor, StockEntry  # noqa: E402
from pharmalink.domain.interfaces import INotificationDispatcher  # noqa: E402
from pharmalink.repositories.stock_repository import StockRepository  # noqa: E402
from pharmalink.services.fulfillment_orchestrator import (  # noqa: E402
    FulfillmentOrchestrator,
)

import pharmalink.db.base  # noqa: E402,F401  registers models
from tests.helpers import ADDRESS, FACILITY_ID, FrozenClock, make_cart  # noqa: E402

UTC = ZoneInfo("UTC")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "services: mark test as service layer test")
    config.addinivalue_line("markers", "repositories: mark test as repository test")
    config.addinivalue_line("markers", "controllers: mark test as controller-related")
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising concurrent writers"
    )


# =====================================================
# DATABASE FIXTURES
# =====================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =====================================================
# SERVICE FIXTURES
# =====================================================


@pytest.fixture
def settings():
    return FulfillmentSettings(
        low_stock_threshold=10,
        cancellation_cutoff_hours=24,
        expiry_warning_days=30,
        pricing=PricingPolicy(tax_rate=Decimal("0.05"), delivery_fee=Decimal("5.00")),
    )


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    """Mock notification dispatcher."""
    return Mock(spec=INotificationDispatcher)


@pytest.fixture
def orchestrator(session_factory, settings, notifier, clock):
    return FulfillmentOrchestrator(
        session_factory=session_factory,
        settings=settings,
        notifier=notifier,
        clock=clock,
        tz=UTC,
    )


@pytest.fixture
def pharmacist():
    return Actor(id=7, role="pharmacist")


@pytest.fixture
def patient():
    return Actor(id=42, role="patient")


@pytest.fixture
def delivery_agent():
    return Actor(id=9, role="delivery")


@pytest.fixture
def seed_stock(session_factory):
    """Insert and commit a stock entry; returns the stored entry."""

    def _seed(medicine_id, quantity, unit_price="10.00", facility_id=FACILITY_ID, **kwargs):
        db = session_factory()
        try:
            entry = StockRepository(db).add(
                StockEntry(
                    facility_id=facility_id,
                    medicine_id=medicine_id,
                    quantity=quantity,
                    unit_price=Decimal(unit_price),
                    **kwargs,
                )
            )
            db.commit()
            return entry
        finally:
            db.close()

    return _seed


@pytest.fixture
def stock_quantity(session_factory):
    """Read the committed quantity for a medicine."""

    def _quantity(medicine_id, facility_id=FACILITY_ID):
        db = session_factory()
        try:
            return StockRepository(db).get(facility_id, medicine_id).quantity
        finally:
            db.close()

    return _quantity


@pytest.fixture
def place_order(orchestrator, patient):
    """Place an order and return it, failing the test on rejection."""

    def _place(*lines, payment_method="cash", **cart_kwargs):
        result = orchestrator.place_order(
            make_cart(*lines, **cart_kwargs), payment_method, ADDRESS, actor=patient
        )
        assert result.ok, result.error
        return result.value

    return _place


# =====================================================
# FLASK APPLICATION FIXTURES
# =====================================================


@pytest.fixture
def app(orchestrator):
    """Create a Flask application bound to the test orchestrator."""
    from pharmalink.main import create_app

    flask_app = create_app(orchestrator)
    flask_app.config.update({"TESTING": True, "PROPAGATE_EXCEPTIONS": True})
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()

