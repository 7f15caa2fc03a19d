"""SQLAlchemy engine and session management for the ledger of record."""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.logging import get_logger
from ..config.settings import Settings, get_settings

logger = get_logger(__name__)

Base = declarative_base()

LEDGER_TABLES = ("user_balances", "balance_ledger", "engine_snapshots", "shield_events")

SQLITE_PRAGMAS = (
    "journal_mode=WAL",
    "foreign_keys=ON",
    "synchronous=NORMAL",
)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _apply_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(f"PRAGMA {pragma}")
    finally:
        cursor.close()


def _engine_options(url: str, settings: Settings) -> dict:
    options = {
        "echo": settings.database_echo_sql,
        "pool_pre_ping": settings.database_pool_pre_ping,
        "pool_recycle": settings.database_pool_recycle,
    }
    if _is_sqlite(url):
        # one shared connection so in-memory databases survive across sessions
        options["connect_args"] = {"check_same_thread": False, "timeout": 30}
        options["poolclass"] = StaticPool
    else:
        options["pool_size"] = 5
        options["max_overflow"] = 10
    return options


def create_engine_from_settings(settings: Optional[Settings] = None) -> Engine:
    """Build an engine for the configured ledger database."""
    settings = settings or get_settings()
    url = settings.get_database_url()

    engine = create_engine(url, **_engine_options(url, settings))
    if _is_sqlite(url):
        event.listen(engine, "connect", _apply_sqlite_pragmas)

    logger.info(
        "Ledger database engine created",
        backend=engine.dialect.name,
        echo_sql=settings.database_echo_sql,
    )
    return engine


def get_engine() -> Engine:
    global _engine

    if _engine is None:
        _engine = create_engine_from_settings()
    return _engine


def get_session_factory() -> sessionmaker:
    """Process-wide session factory bound to the ledger engine."""
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(), autoflush=False, expire_on_commit=False
        )
    return _session_factory


def get_session_sync() -> Session:
    """New session from the process-wide factory; the caller closes it."""
    return get_session_factory()()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """
    Transactional session: committed on success, rolled back on error.

    Args:
        factory: Session factory to use instead of the process-wide one
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_tables(engine: Optional[Engine] = None) -> None:
    """Create any missing ledger tables."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Ledger tables ensured", tables=list(LEDGER_TABLES))


def drop_tables(engine: Optional[Engine] = None) -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine or get_engine())
    logger.warning("Ledger tables dropped")


def check_database_health() -> dict:
    """
    Probe ledger connectivity and report tables that do not exist yet.

    Returns:
        dict: ``status`` plus connectivity details, or the error
    """
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connected = connection.execute(text("SELECT 1")).scalar() == 1
            existing = set(inspect(connection).get_table_names())

        return {
            "status": "healthy" if connected else "unhealthy",
            "connectivity": connected,
            "backend": engine.dialect.name,
            "missing_tables": [t for t in LEDGER_TABLES if t not in existing],
        }
    except Exception as e:
        logger.error("Ledger health check failed", error=str(e), exc_info=True)
        return {"status": "unhealthy", "connectivity": False, "error": str(e)}


def reset_engine() -> None:
    """Dispose the cached engine so the next access rebuilds it from settings."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
