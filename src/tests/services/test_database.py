"""Tests for local cache lifecycle helpers (reset, close)."""

import pytest
from sqlalchemy.exc import OperationalError

from src.services import client_service
from src.services import database
from src.services.exceptions import DatabaseError


@pytest.fixture
def memory_engine(monkeypatch):
    """Point the global engine at a fresh in-memory database."""
    engine = database.create_database_engine("sqlite:///:memory:")
    monkeypatch.setattr(database, "_engine", engine)
    monkeypatch.setattr(database, "_SessionFactory", None)
    database.init_database()
    yield engine
    engine.dispose()


class TestResetDatabase:
    def test_requires_confirmation(self, memory_engine):
        with pytest.raises(ValueError):
            database.reset_database()

    def test_drops_every_record(self, memory_engine):
        client_service.create_client({"name": "Tim Brown", "pickup": True})

        database.reset_database(confirm=True)

        assert client_service.list_clients() == []
        assert database.verify_database()

    def test_sqlalchemy_failure_becomes_database_error(self, memory_engine, monkeypatch):
        def failing_drop(engine):
            raise OperationalError("DROP TABLE clients", {}, Exception("disk I/O error"))

        monkeypatch.setattr(database.Base.metadata, "drop_all", failing_drop)

        with pytest.raises(DatabaseError) as exc_info:
            database.reset_database(confirm=True)

        assert isinstance(exc_info.value.original_error, OperationalError)


class TestCloseConnections:
    def test_forgets_engine_and_factory(self, memory_engine):
        database.get_session_factory()

        database.close_connections()

        assert database._engine is None
        assert database._SessionFactory is None
