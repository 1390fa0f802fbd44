from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Build the engine for the configured database.

    The engine is owned by the process entry point, which disposes it on
    shutdown. In-memory SQLite needs a single shared connection.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_models(engine: Engine) -> None:
    """Create tables for all registered models"""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
