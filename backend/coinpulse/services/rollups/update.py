"""
Recompute machine_counters, daily_rollups and hourly_rollups from pulse_events.

Every refresh re-aggregates the non-deleted events of its key and overwrites the row, so running
it twice for the same event (retry after a crash, reprocessing) never double counts. Rows are
upserted on their unique key (Postgres/SQLite ON CONFLICT); other dialects read-then-write and
rely on the unique constraint plus the retry in refresh_for_event.
"""
import logging
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from coinpulse.core.constants import AVERAGE_DIGITS, MONEY_QUANT
from coinpulse.core.errors import ConflictError, NotFound
from coinpulse.models.daily_rollup import DailyRollup
from coinpulse.models.hourly_rollup import HourlyRollup
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.rollups.locks import machine_lock

logger = logging.getLogger(__name__)


def money(value: Any) -> Decimal:
    """Normalise DB sums (Decimal, float on SQLite, None) to 2-place Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(MONEY_QUANT)


def mean(value: Any) -> float | None:
    return round(float(value), AVERAGE_DIGITS) if value is not None else None


def _live_events(db: Session, machine_id: int):
    return db.query(PulseEvent).filter(PulseEvent.machine_id == machine_id, PulseEvent.is_deleted.is_(False))


def _upsert(db: Session, model, key: dict[str, Any], values: dict[str, Any]) -> None:
    now = datetime.now(timezone.utc)
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(model).values(**key, **values, computed_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(key),
            set_={**{col: getattr(stmt.excluded, col) for col in values}, "computed_at": now},
        )
        db.execute(stmt)
        return
    row = db.query(model).filter_by(**key).first()
    if row is None:
        db.add(model(**key, **values, computed_at=now))
    else:
        for col, v in values.items():
            setattr(row, col, v)
        row.computed_at = now
    db.flush()


def refresh_machine_counters(db: Session, machine_id: int) -> MachineCounters:
    """Lifetime totals over non-deleted events. Version column makes concurrent writers fail with StaleDataError."""
    total, revenue, play_time, last_at = (
        db.query(
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.sum(PulseEvent.duration_seconds),
            func.max(PulseEvent.occurred_at),
        )
        .filter(PulseEvent.machine_id == machine_id, PulseEvent.is_deleted.is_(False))
        .one()
    )
    counters = db.query(MachineCounters).filter(MachineCounters.machine_id == machine_id).first()
    if counters is None:
        counters = MachineCounters(machine_id=machine_id)
        db.add(counters)
    counters.total_events = int(total or 0)
    counters.total_revenue = money(revenue)
    counters.total_play_time_seconds = int(play_time or 0)
    counters.last_event_at = last_at
    db.flush()
    return counters


def refresh_hourly_rollup(db: Session, machine_id: int, day: date, hour: int) -> None:
    count, revenue, play_time = (
        db.query(
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.sum(PulseEvent.duration_seconds),
        )
        .filter(
            PulseEvent.machine_id == machine_id,
            PulseEvent.is_deleted.is_(False),
            PulseEvent.event_date == day,
            PulseEvent.hour == hour,
        )
        .one()
    )
    key = {"machine_id": machine_id, "rollup_date": day, "hour": hour}
    if not count:
        db.query(HourlyRollup).filter_by(**key).delete(synchronize_session=False)
        return
    _upsert(db, HourlyRollup, key, {
        "event_count": int(count),
        "revenue": money(revenue),
        "play_time_seconds": int(play_time or 0),
    })


def peak_hour_for_day(db: Session, machine_id: int, day: date) -> int | None:
    """Hour with the most events that day; earliest hour wins ties."""
    event_count = func.count(PulseEvent.id)
    row = (
        _live_events(db, machine_id)
        .filter(PulseEvent.event_date == day)
        .with_entities(PulseEvent.hour, event_count)
        .group_by(PulseEvent.hour)
        .order_by(event_count.desc(), PulseEvent.hour.asc())
        .first()
    )
    return row[0] if row else None


def refresh_daily_rollup(db: Session, machine_id: int, day: date) -> None:
    """Exact means over the day's events (not running averages) plus the peak hour."""
    count, revenue, play_time, avg_players, avg_duration = (
        db.query(
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.sum(PulseEvent.duration_seconds),
            func.avg(PulseEvent.players_count),
            func.avg(PulseEvent.duration_seconds),
        )
        .filter(
            PulseEvent.machine_id == machine_id,
            PulseEvent.is_deleted.is_(False),
            PulseEvent.event_date == day,
        )
        .one()
    )
    key = {"machine_id": machine_id, "rollup_date": day}
    if not count:
        db.query(DailyRollup).filter_by(**key).delete(synchronize_session=False)
        return
    _upsert(db, DailyRollup, key, {
        "event_count": int(count),
        "total_revenue": money(revenue),
        "total_play_time_seconds": int(play_time or 0),
        "average_players": mean(avg_players),
        "average_duration_seconds": mean(avg_duration),
        "peak_hour": peak_hour_for_day(db, machine_id, day),
    })


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def apply_rollups_for_event(db: Session, event: PulseEvent) -> MachineCounters:
    """Counters, then the event's day, then its hour. Caller owns the transaction."""
    counters = refresh_machine_counters(db, event.machine_id)
    refresh_daily_rollup(db, event.machine_id, event.event_date)
    refresh_hourly_rollup(db, event.machine_id, event.event_date, event.hour)
    return counters


def refresh_for_event(
    db: Session,
    event_id: int,
    *,
    retries: int,
    started: float | None = None,
) -> MachineCounters:
    """
    Refresh all derived rows touched by one stored event in a single transaction under the
    machine lock and mark the event processed in that same commit. Either every refresh lands
    together with processed=true or nothing does. Conflicts roll back and retry up to `retries` times.

    `started` (a time.perf_counter() reading) sets processing_ms in the same commit: the time from
    receiving the event until it was fully processed.
    """
    attempt = 0
    while True:
        attempt += 1
        event = db.get(PulseEvent, event_id)
        if event is None:
            raise NotFound(f"Event {event_id} not found", event_id=event_id)
        with machine_lock(event.machine_id):
            try:
                counters = apply_rollups_for_event(db, event)
                event.processed = True
                if started is not None:
                    event.processing_ms = elapsed_ms(started)
                db.commit()
                return counters
            except (IntegrityError, StaleDataError) as e:
                db.rollback()
                if attempt >= retries:
                    logger.warning(
                        "Rollup conflict for event %s (machine %s) after %s attempts",
                        event_id, event.machine_id, attempt,
                    )
                    raise ConflictError(
                        "Concurrent update to machine counters/rollups",
                        event_id=event_id,
                        attempts=attempt,
                    ) from e
                logger.info("Rollup conflict for event %s, retrying (%s/%s)", event_id, attempt, retries)
            except Exception:
                db.rollback()
                raise
