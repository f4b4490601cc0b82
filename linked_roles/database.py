"""
Database engine for the credential store. SQLite by default.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from linked_roles.models import Base


def make_engine(database_url: str) -> Engine:
    """
    SQLite: in-memory needs StaticPool so all connections share the same DB (for tests).
    File-based SQLite needs check_same_thread=False for FastAPI's threadpool.
    """
    if database_url.startswith("sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    connect_args = {"check_same_thread": False} if "sqlite" in database_url else {}
    return create_engine(database_url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """Create the store table if missing."""
    Base.metadata.create_all(bind=engine)
