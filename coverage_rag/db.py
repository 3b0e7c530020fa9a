"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session initialization, metadata base, and helpers:
- make_engine: Engine for a URL; creates the parent directory of SQLite files.
- get_engine / get_session_factory: Lazily created defaults bound to settings.database_url.
- init_db: Creates the catalog tables (topics, documents, chunks, embeddings).
- session_scope: Context-managed transactional scope for imperative workflows.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from coverage_rag.config import settings

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, **kwargs) -> Engine:
    """Create an engine, preparing the on-disk location of SQLite databases.

    Args:
        url: SQLAlchemy database URL.
        **kwargs: Extra keyword arguments for sqlalchemy.create_engine.

    Returns:
        Engine: A new engine; foreign keys are enforced on SQLite.
    """
    parsed = make_url(url)
    is_sqlite = parsed.get_backend_name() == "sqlite"
    if is_sqlite and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    if not is_sqlite:
        kwargs.setdefault("pool_pre_ping", True)
    engine = create_engine(url, future=True, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True)


def get_engine() -> Engine:
    """Return the process-wide engine for settings.database_url, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = make_engine(settings.database_url)
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create the catalog tables if they do not exist.

    This function is idempotent and safe to run multiple times.
    """
    # Import models after Base is defined
    from coverage_rag import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


@contextmanager
def session_scope(session_factory: Optional[sessionmaker] = None):
    """Provide a transactional scope around a series of operations.

    Yields:
        Session: A SQLAlchemy session from session_factory (default: get_session_factory()).

    Notes:
        - Commits on successful exit.
        - Rolls back and re-raises on exception.
        - Always closes the session at the end.
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

