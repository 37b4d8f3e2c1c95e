"""
Database connection and setup
SQLite database with SQLAlchemy
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


def make_engine(database_url: str) -> Engine:
    """
    Create the engine for the cache database.

    In-memory SQLite needs a single shared connection or every session would
    see its own empty database.
    """
    kwargs = {
        "connect_args": {"check_same_thread": False},  # Needed for SQLite
        "echo": False,  # Set to True to see SQL queries
    }
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(engine: Engine) -> None:
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autoflush=False, bind=engine)
