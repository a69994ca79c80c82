"""Database configuration and session management."""

import logging

import sqlalchemy.exc
from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings
from .exceptions import StorageError

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def is_postgresql() -> bool:
    """Check if the configured database is PostgreSQL."""
    return DATABASE_URL.startswith("postgresql")


if DATABASE_URL.startswith("sqlite"):
    _in_memory = DATABASE_URL in ("sqlite://", "sqlite:///:memory:")
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        # An in-memory database lives and dies with its connection, so every
        # session must share the one connection.
        poolclass=StaticPool if _in_memory else None,
    )

    # SQLite ignores ON DELETE CASCADE / SET NULL unless foreign keys are
    # switched on for each connection.
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI routes to get a database session.

    Rolls back on unhandled exceptions so the connection goes back to the
    pool clean.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def commit_or_raise(db: Session) -> None:
    """Commit the session, converting driver failures into StorageError.

    Nothing is partially committed: the session is rolled back before the
    error propagates.
    """
    try:
        db.commit()
    except sqlalchemy.exc.SQLAlchemyError as e:
        db.rollback()
        logger.error("Commit failed: %s", e)
        raise StorageError("Failed to persist changes", original_error=e) from e
