"""Database session management for the PetHaven service.

This module provides SQLAlchemy engine and session management:
- engine: The SQLAlchemy engine connected to the database
- SessionLocal: Session factory for creating database sessions
- get_db(): FastAPI dependency for request-scoped sessions

PostgreSQL in production, SQLite for local development.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from pethaven.config import DATABASE_URL

log = logging.getLogger(__name__)

if DATABASE_URL.startswith("sqlite"):
    from sqlalchemy.pool import StaticPool

    engine_kwargs = {
        "echo": False,
        "pool_pre_ping": True,
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    log.info("Using SQLite database (local development mode)")
else:
    engine_kwargs = {
        "echo": False,
        "pool_pre_ping": True,      # Verify connections before use
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 1800,       # Recycle connections every 30 min
    }
    log.info("Using PostgreSQL database (production mode)")

engine = create_engine(DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite PRAGMAs for local development.

    - foreign_keys=ON: Enforce referential integrity
    - journal_mode=WAL: Better concurrent read performance
    - busy_timeout=5000: Wait up to 5s for locks
    """
    if DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions.

    Usage:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            ...

    The session is automatically closed when the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_database() -> None:
    """Initialize the database by creating all tables.

    Called during application startup. Tables are created idempotently.
    For SQLite, also ensures the database directory exists.
    """
    from pathlib import Path
    from pethaven.db.models import Base

    log.info(f"Initializing database at {DATABASE_URL.split('@')[-1] if '@' in DATABASE_URL else DATABASE_URL}")

    if DATABASE_URL.startswith("sqlite:///"):
        db_path = DATABASE_URL.replace("sqlite:///", "")
        if db_path and db_path != ":memory:":
            db_dir = Path(db_path).parent
            db_dir.mkdir(parents=True, exist_ok=True)
            log.info(f"Ensured database directory exists: {db_dir}")

    Base.metadata.create_all(bind=engine)
    log.info("Database tables created successfully")


@contextmanager
def translate_storage_errors(db: Session, operation: str) -> Generator[None, None, None]:
    """Roll back and re-raise driver failures as StorageError.

    Integrity and stale-version errors pass through untouched so callers can
    map them to idempotent reads or conflicts.
    """
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError
    from sqlalchemy.orm.exc import StaleDataError

    from pethaven.exceptions import StorageError

    try:
        yield
    except (IntegrityError, StaleDataError):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log.error(f"Storage failure during {operation}: {e}")
        raise StorageError(f"Storage failure during {operation}") from e
