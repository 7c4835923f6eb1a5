"""
Machine reference record. Owned by the machine registry (CRUD lives outside this service);
ingestion only reads it to resolve, validate and denormalize events.
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func

from coinpulse.db.base import Base


class Machine(Base):
    __tablename__ = "machines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True, index=True)  # upper-case external code
    name = Column(String(100), nullable=True)
    status = Column(String(16), nullable=False, default="active", index=True)  # active | inactive | maintenance | broken
    is_active = Column(Boolean, nullable=False, default=True)  # false = deactivated in the registry

    region = Column(String(64), nullable=False, index=True)
    city = Column(String(100), nullable=False)
    address = Column(String(200), nullable=False)

    pulse_value = Column(Numeric(12, 2), nullable=False, default=1)  # value of one pulse when caller sends none
    currency = Column(String(3), nullable=False, default="EUR")
    capacity = Column(Numeric(12, 2), nullable=True)  # cash box capacity, for fill level

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
