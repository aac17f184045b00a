"""Database bootstrap helpers for the SQL-backed status store."""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def build_session_factory(database_url: str) -> sessionmaker:
    """Create one engine per process and return its session factory."""

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory SQLite must share one connection across sessions.
            kwargs["poolclass"] = StaticPool
        else:
            Path(database_url.replace("sqlite:///", "", 1).split("?")[0]).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    # `expire_on_commit=False` keeps ORM objects readable after commit.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
