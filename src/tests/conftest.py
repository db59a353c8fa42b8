"""Pytest configuration and fixtures for service layer tests."""

from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base

# Monday; its edit deadline is Saturday 2024-06-01 23:59:59
DELIVERY_DATE = date(2024, 6, 3)
BEFORE_DEADLINE = datetime(2024, 5, 30, 12, 0)


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)

    db_module.get_session_factory = original_get_session


@pytest.fixture
def make_client(test_db):
    """Factory creating a client with one address in zone "1"."""
    from src.services import client_service

    def _make(name="Tim Brown", addresses=("10 Main St",), **overrides):
        data = {
            "name": name,
            "deliveryDay": "Monday",
            "zone": "1",
            "portions": 2,
            "contacts": [
                {"fullName": f"{name} {i}" if i else name, "address": address}
                for i, address in enumerate(addresses)
            ],
        }
        data.update(overrides)
        return client_service.create_client(data)

    return _make


@pytest.fixture
def sample_client(make_client):
    """Tim Brown, delivered on Mondays in zone 1."""
    return make_client("Tim Brown", displayName="Tim B")


@pytest.fixture
def make_ready_order(test_db):
    """Factory planning, approving and cooking an order for DELIVERY_DATE."""
    from src.services import kitchen_service, order_service

    def _ready(client_name, delivery_date=DELIVERY_DATE, dishes=("Chicken", "Rice")):
        protein, *rest = dishes
        order_service.create_menu_item(
            {
                "clientName": client_name,
                "date": delivery_date,
                "protein": protein,
                "starch": rest[0] if rest else None,
            },
            enforce_deadline=False,
        )
        order_service.approve_menu_item(client_name, delivery_date)
        for dish in dishes:
            kitchen_service.mark_dish_complete(dish)
        return order_service.get_order(client_name, delivery_date)

    return _ready


@pytest.fixture
def remote_store():
    """An online in-memory remote store."""
    from src.services.remote_store import InMemoryRemoteStore

    return InMemoryRemoteStore(online=True)
