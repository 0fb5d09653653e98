"""Relational store session management."""

from contextlib import contextmanager
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from merchant_desk.infra.config import config


# Small pool: this service only reads configuration and appends logs
engine = create_engine(
    config.DATABASE_URL,
    poolclass=QueuePool,
    pool_size=3,
    max_overflow=2,
    pool_timeout=5,  # Seconds to wait for connection from pool
    pool_recycle=1800,
    pool_pre_ping=True,  # Verify connections before using
    echo=config.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Get a database session that commits on success and rolls back on error.

    Callers run this from worker threads (asyncio.to_thread) so the event
    loop is never blocked on Postgres.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI routes."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
