from coinpulse.db.base import Base
from coinpulse.db.session import get_db, engine, SessionLocal
from coinpulse.db.tables import ALL_TABLE_NAMES, DERIVED_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "DERIVED_TABLE_NAMES"]
