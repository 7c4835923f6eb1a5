"""Per-machine, per-day, per-hour aggregates of pulse_events. One row per (machine_id, rollup_date, hour)."""
from sqlalchemy import Column, Date, DateTime, Integer, Numeric, UniqueConstraint
from sqlalchemy.sql import func

from coinpulse.db.base import Base


class HourlyRollup(Base):
    __tablename__ = "hourly_rollups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    machine_id = Column(Integer, nullable=False, index=True)
    rollup_date = Column(Date, nullable=False, index=True)
    hour = Column(Integer, nullable=False)  # 0-23
    computed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    event_count = Column(Integer, nullable=False, default=0)
    revenue = Column(Numeric(14, 2), nullable=False, default=0)
    play_time_seconds = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("machine_id", "rollup_date", "hour", name="uq_hourly_rollups_machine_date_hour"),
    )
