"""
Per-machine, per-day aggregates of pulse_events. One row per (machine_id, rollup_date);
recomputed from the event log on every event for that key, so retries never double count.
"""
from sqlalchemy import Column, Date, DateTime, Float, Integer, Numeric, UniqueConstraint
from sqlalchemy.sql import func

from coinpulse.db.base import Base


class DailyRollup(Base):
    __tablename__ = "daily_rollups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    machine_id = Column(Integer, nullable=False, index=True)
    rollup_date = Column(Date, nullable=False, index=True)  # business-timezone date
    computed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    event_count = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(14, 2), nullable=False, default=0)
    total_play_time_seconds = Column(Integer, nullable=False, default=0)
    average_players = Column(Float, nullable=True)
    average_duration_seconds = Column(Float, nullable=True)
    peak_hour = Column(Integer, nullable=True)  # 0-23, busiest hour of the day (earliest on ties)

    __table_args__ = (UniqueConstraint("machine_id", "rollup_date", name="uq_daily_rollups_machine_date"),)
