"""
RTI Tracker - Database Configuration
SQLAlchemy engine and session factory for the SQL mirror store.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Base class for ORM models
Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine. SQLite connections are shared across threads."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One connection, or every session would see a fresh empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, echo=echo, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database - create all tables."""
    # Importing registers the ORM tables on Base.metadata
    from .models import db_models  # noqa: F401
    Base.metadata.create_all(bind=engine)
