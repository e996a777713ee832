"""SQLAlchemy declarative base and session helpers."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables known to the metadata."""
    from sitegate.db import models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine)
