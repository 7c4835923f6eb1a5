"""
Append-only pulse/game events. Location and currency are copied from the machine at write time
so historical reports reflect the context when the event happened. Temporal columns are derived
once from occurred_at (see services.temporal) and never edited on their own.
Only processed and is_deleted change after insert.
"""
from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, Numeric, String
from sqlalchemy.sql import func

from coinpulse.db.base import Base


class PulseEvent(Base):
    __tablename__ = "pulse_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    machine_id = Column(Integer, nullable=False, index=True)
    machine_code = Column(String(20), nullable=False, index=True)

    value = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)  # UTC

    # Derived in the business time zone
    event_date = Column(Date, nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday
    hour = Column(Integer, nullable=False, index=True)
    minute = Column(Integer, nullable=False)
    quarter = Column(Integer, nullable=False)
    week_of_year = Column(Integer, nullable=False)

    # Location snapshot
    region = Column(String(64), nullable=False, index=True)
    city = Column(String(100), nullable=False)
    address = Column(String(200), nullable=False)

    # Game details (a bare coin pulse is one player, zero seconds)
    game_type = Column(String(16), nullable=False, default="pulse")
    players_count = Column(Integer, nullable=False, default=1)
    duration_seconds = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=1)

    # Caller metadata
    sequence_number = Column(Integer, nullable=True)  # gap detection only; not enforced
    origin_ip = Column(String(45), nullable=True)
    client_id = Column(String(500), nullable=True)
    processing_ms = Column(Integer, nullable=True)

    processed = Column(Boolean, nullable=False, default=True)  # false = counters/rollups not refreshed yet
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_pulse_events_machine_date_hour", "machine_id", "event_date", "hour"),
        Index("ix_pulse_events_region_date", "region", "event_date"),
    )
