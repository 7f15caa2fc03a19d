"""Shared test configuration and fixtures."""

import os
import tempfile
from unittest.mock import Mock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


@pytest.fixture(autouse=True)
def test_settings_env():
    """Point settings at an in-memory database and reset cached state."""
    from meridian.config.settings import get_settings
    from meridian.ledger import database

    test_env = {
        "ENVIRONMENT": "testing",
        "DATABASE_URL": "sqlite://",
        "ENDPOINT_AUTH_TOKEN": "",
        "LEDGER_SYNC_ENABLED": "true",
        "LOG_FILE_ENABLED": "false",
    }

    with patch.dict(os.environ, test_env):
        get_settings.cache_clear()
        database.reset_engine()
        yield test_env

    get_settings.cache_clear()
    database.reset_engine()


@pytest.fixture
def isolated_db():
    """Create an isolated database for testing."""
    temp_fd, temp_path = tempfile.mkstemp(suffix=".db")
    db_url = f"sqlite:///{temp_path}"

    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    SessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )

    from meridian.ledger import models  # noqa: F401
    from meridian.ledger.database import Base

    Base.metadata.create_all(bind=engine)

    try:
        yield {
            "engine": engine,
            "session_factory": SessionLocal,
            "db_url": db_url,
            "db_path": temp_path,
        }
    finally:
        engine.dispose()
        os.close(temp_fd)
        os.unlink(temp_path)


@pytest.fixture
def session_factory(isolated_db):
    """Session factory bound to the isolated test database."""
    return isolated_db["session_factory"]


@pytest.fixture
def db_session(session_factory):
    """A session on the isolated test database, closed after the test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def mock_ledger():
    """Ledger sync client that records calls instead of writing."""
    from meridian.ledger.sync import LedgerSyncClient

    return Mock(spec=LedgerSyncClient)


@pytest.fixture
def engine(mock_ledger):
    """Engine initialized for ``user_1`` with $10,000 cash."""
    from meridian.trading.engine import UnifiedPositionEngine

    position_engine = UnifiedPositionEngine(ledger=mock_ledger)
    position_engine.initialize("user_1", 10_000.0)
    return position_engine


@pytest.fixture
def uninitialized_engine(mock_ledger):
    from meridian.trading.engine import UnifiedPositionEngine

    return UnifiedPositionEngine(ledger=mock_ledger)
