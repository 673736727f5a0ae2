# core/db.py
"""
Database management for the referral network.
Single database; the engine is created lazily from Config.DATABASE_URL.
"""
import logging
from contextlib import contextmanager
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import Config
from models.base import Base
import models  # noqa: F401  registers every table on Base.metadata

logger = logging.getLogger(__name__)

# Database engines
_engine = None
_SessionFactory = None


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for a URL.

    In-memory SQLite gets a single shared connection so every thread and
    session sees the same database.
    """
    if database_url.startswith("sqlite") and (":memory:" in database_url or database_url == "sqlite://"):
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool
        )
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False}
        )
    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True
    )


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        database_url = Config.get(Config.DATABASE_URL, "sqlite:///referral_network.db")
        _engine = create_db_engine(database_url)
        logger.info(f"Database engine created: {database_url}")
    return _engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get or create session factory (a fresh one when an engine is given)."""
    global _SessionFactory
    if engine is not None:
        return sessionmaker(bind=engine, expire_on_commit=False)
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
        logger.info("Session factory created")
    return _SessionFactory


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        Session instance
    """
    factory = get_session_factory()
    return factory()


@contextmanager
def get_db_session_ctx(factory=None):
    """
    Context manager for database sessions.

    Usage:
        with get_db_session_ctx() as session:
            node = session.query(NodeRecord).first()
    """
    session = factory() if factory is not None else get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        session.close()


def setup_database(engine: Optional[Engine] = None):
    """Initialize database - create all tables."""
    logger.info("Setting up database...")
    Base.metadata.create_all(engine or get_engine())
    logger.info("Database setup completed")


def drop_all_tables(engine: Optional[Engine] = None):
    """Drop all tables - USE WITH CAUTION!"""
    logger.warning("Dropping all tables...")
    Base.metadata.drop_all(engine or get_engine())
    logger.info("All tables dropped")
