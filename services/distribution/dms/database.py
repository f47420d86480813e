"""
Database configuration and session management for the distribution service.

This module sets up the database connection using SQLAlchemy and provides
a session factory for database operations.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config


def build_engine(url: str = config.DATABASE_URL):
    """
    Create a SQLAlchemy engine with caller-imposed timeouts.

    PostgreSQL connections get a server-side statement timeout; SQLite
    connections get a busy timeout so concurrent writers wait for the lock
    instead of failing immediately.

    Args:
        url: Database URL

    Returns:
        Engine: configured SQLAlchemy engine
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": config.DB_STATEMENT_TIMEOUT_MS / 1000},
        )
    return create_engine(
        url,
        pool_timeout=config.DB_POOL_TIMEOUT,
        connect_args={"options": f"-c statement_timeout={config.DB_STATEMENT_TIMEOUT_MS}"},
    )


# Create SQLAlchemy engine
engine = build_engine()

# Create SessionLocal class for database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def get_db():
    """
    Dependency function that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        Use as a FastAPI dependency to inject database sessions into route handlers.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
