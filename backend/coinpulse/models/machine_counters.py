"""Lifetime totals per machine. Derived from pulse_events; version guards concurrent writers."""
from sqlalchemy import Column, DateTime, Integer, Numeric
from sqlalchemy.sql import func

from coinpulse.db.base import Base


class MachineCounters(Base):
    __tablename__ = "machine_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    machine_id = Column(Integer, nullable=False, unique=True)
    total_events = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(14, 2), nullable=False, default=0)
    total_play_time_seconds = Column(Integer, nullable=False, default=0)
    last_event_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
