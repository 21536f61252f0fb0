"""
Database configuration and session management for the Expense Tracker backend.

Uses SQLAlchemy ORM with a SQLite database by default. Foreign keys are
enforced on every SQLite connection so category deletes are restricted.
"""

import os
import sqlite3
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from expense_tracker.config import settings
from expense_tracker.exceptions import ConflictError, StorageError

logger = logging.getLogger(__name__)

# Create database directory if it doesn't exist
db_dir = os.path.dirname(settings.DATABASE_URL.replace("sqlite:///", ""))
if settings.DATABASE_URL.startswith("sqlite") and db_dir and not os.path.exists(db_dir):
    os.makedirs(db_dir, exist_ok=True)

# Create SQLAlchemy engine
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    connect_args=connect_args,
)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """
    Enable foreign key enforcement for SQLite connections.

    Also replaces the built-in ASCII-only lower() with Python's str.lower, so
    case-insensitive category names hold for non-ASCII letters.
    """
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Base class for declarative models
Base = declarative_base()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = None):
    """
    Initialize database by creating all tables.
    """
    # Import models to ensure they're registered
    from expense_tracker.models import receipt, category, shop  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    """
    Dependency for getting database session.
    Use in FastAPI route dependencies.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Run a unit of work as one transaction.

    Commits when the block finishes, rolls back on any exception. Constraint
    violations become ConflictError, other database failures StorageError;
    pipeline errors raised inside the block propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Transaction rolled back on constraint violation: {e.orig}")
        raise ConflictError(f"Constraint violation: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {e}", exc_info=True)
        raise StorageError(f"Database error: {e}") from e
    except Exception:
        db.rollback()
        raise
