"""
Local cache connection and session management for MealRun.

This module provides:
- Engine creation for the SQLite local cache
- Session factory and the session_scope() transaction helper
- Table creation, verification and reset
- Foreign key enforcement and WAL mode on every connection
"""

from typing import Optional
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base
from .exceptions import DatabaseError

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on every new connection.

    Foreign keys keep contacts tied to their client; WAL lets the operations
    CLI read while the app writes.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure the local cache engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements

    Returns:
        Configured SQLAlchemy Engine
    """
    if database_url is None:
        database_url = get_config().database_url

    logger.info(f"Creating local cache engine: {database_url}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        # In-memory databases must share one connection
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def _register_models() -> None:
    # Importing the package registers every table with Base.metadata
    from .. import models  # noqa: F401


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create all local cache tables that do not exist yet.

    Safe to call multiple times.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    _register_models()
    Base.metadata.create_all(engine)
    logger.info("Local cache tables initialized")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global engine, creating it on first use.

    Args:
        force_recreate: If True, recreate the engine even if one exists
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """Get the global session factory."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Prefer session_scope(); callers of get_session() own commit, rollback
    and close.
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for local cache operations.

    Commits on success, rolls back on any exception and always closes the
    session. Completion, undo, route save and dataset replacement each run
    inside one scope so a failed guard leaves no partial state.

    Yields:
        Database session

    Example:
        with session_scope() as session:
            session.add(Client(name="Tim Brown"))
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def database_exists() -> bool:
    """Check if the local cache file exists."""
    return get_config().database_exists()


def verify_database() -> bool:
    """
    Verify that the local cache is reachable and has the core tables.

    Returns:
        True if the clients and order tables exist, False otherwise
    """
    try:
        tables = inspect(get_engine()).get_table_names()
    except SQLAlchemyError as e:
        logger.error(f"Local cache verification failed: {e}")
        return False

    return all(table in tables for table in ("clients", "order_instances"))


def reset_database(confirm: bool = False) -> None:
    """
    Drop all tables and recreate the local cache.

    WARNING: This deletes every cached record, including the pending queue.

    Args:
        confirm: Must be True to actually reset

    Raises:
        ValueError: If confirm is not True
        DatabaseError: If the tables cannot be dropped or recreated
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("RESETTING LOCAL CACHE - ALL DATA WILL BE LOST")

    engine = get_engine()
    _register_models()
    try:
        Base.metadata.drop_all(engine)
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        logger.error(f"Local cache reset failed: {e}")
        raise DatabaseError("reset failed", e)
    logger.info("Local cache tables recreated")


def close_connections() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _SessionFactory

    _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Local cache connections closed")


def initialize_app_database() -> None:
    """
    Initialize the local cache on application start.

    Creates the database file and tables if they don't exist.
    """
    config = get_config()

    if not config.database_exists():
        logger.info(f"Creating new local cache at: {config.database_path}")
    else:
        logger.info(f"Using existing local cache at: {config.database_path}")

    init_database(get_engine())

    if verify_database():
        logger.info("Local cache initialized and verified")
    else:
        logger.warning("Local cache verification failed - tables may not exist")
