"""
Database session and engine.

SQLite notes: in-memory `sqlite://` lives on one connection, so it gets StaticPool (tests,
throwaway runs; single writer only). A file-backed SQLite database gets a normal pool with one
connection per thread, and writers wait on the file lock for up to SQLITE_BUSY_TIMEOUT seconds
instead of failing at once.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coinpulse.config import settings
from coinpulse.db.base import Base

SQLITE_BUSY_TIMEOUT = 30


def _is_memory_sqlite(url: str) -> bool:
    database = make_url(url).database
    return not database or database == ":memory:" or database.startswith("file::memory:")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        if _is_memory_sqlite(url):
            return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
        return {
            "connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
            "pool_size": 8,
            "max_overflow": 10,
            "pool_timeout": 30,
        }
    return {
        "pool_size": 8,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_timeout": 30,
    }


def make_engine(url: str) -> Engine:
    return create_engine(url, **_engine_kwargs(url))


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all_tables() -> None:
    """Create tables directly from the models (local runs and tests; production uses alembic)."""
    import coinpulse.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
