"""
Read-only aggregation over the event log.

Every operation is derivable from pulse_events alone. daily_stats and hourly_profile can also be
answered from the rollup tables; both paths emit the same fields with the same rounding so their
results compare equal row for row.
"""
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coinpulse.config import settings
from coinpulse.core.constants import (
    AVERAGE_DIGITS,
    EVENTS_DEFAULT_PAGE_LIMIT,
    HOURS_PER_DAY,
    REALTIME_LATEST_EVENTS,
    TOP_MACHINES_DEFAULT,
    TOP_MACHINES_MAX,
)
from coinpulse.core.errors import ValidationError
from coinpulse.models.daily_rollup import DailyRollup
from coinpulse.models.hourly_rollup import HourlyRollup
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.machines.types import ResolvedMachine
from coinpulse.services.rollups.update import mean, money
from coinpulse.services.serializers import counters_to_dict, event_brief, event_to_dict, iso
from coinpulse.services.stats.filters import EventFilters

AVERAGE_QUANT = Decimal(1).scaleb(-AVERAGE_DIGITS)


def average_value(revenue: Any, count: Any) -> Decimal | None:
    """revenue / count at 4 places; computed the same way on both read paths."""
    if not count:
        return None
    return (money(revenue) / int(count)).quantize(AVERAGE_QUANT)


def _with_range(filters: EventFilters | None, start: date | None, end: date | None) -> EventFilters:
    filters = filters or EventFilters()
    if start is None and end is None:
        return filters
    return replace(
        filters,
        start_date=start if start is not None else filters.start_date,
        end_date=end if end is not None else filters.end_date,
    )


def _events(db: Session, filters: EventFilters):
    return filters.apply(db.query(PulseEvent))


def _rollup_filter(q, model, date_col, filters: EventFilters):
    """Machine and date narrowing for rollup tables (they carry no code or location)."""
    if filters.machine_id is not None:
        q = q.filter(model.machine_id == filters.machine_id)
    if filters.machine_code is not None:
        ids = select(PulseEvent.machine_id).where(PulseEvent.machine_code == filters.machine_code).distinct()
        q = q.filter(model.machine_id.in_(ids))
    if filters.start_date is not None:
        q = q.filter(date_col >= filters.start_date)
    if filters.end_date is not None:
        q = q.filter(date_col <= filters.end_date)
    return q


def _use_rollups(filters: EventFilters, use_rollups: bool | None) -> bool:
    if not filters.rollup_compatible:
        if use_rollups:
            raise ValidationError("Rollups cannot answer region/city filters")
        return False
    if use_rollups is None:
        return filters.has_machine
    return use_rollups


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def events_in_range(
    db: Session,
    start: date | None = None,
    end: date | None = None,
    filters: EventFilters | None = None,
    *,
    page: int = 1,
    limit: int = EVENTS_DEFAULT_PAGE_LIMIT,
) -> dict[str, Any]:
    """Newest first (occurred_at desc, id desc), paginated."""
    if page < 1:
        raise ValidationError("page must be >= 1", page=page)
    if limit < 1 or limit > settings.events_page_limit_max:
        raise ValidationError(
            f"limit must be between 1 and {settings.events_page_limit_max}", limit=limit
        )
    filters = _with_range(filters, start, end)
    q = _events(db, filters)
    total = q.count()
    rows = (
        q.order_by(PulseEvent.occurred_at.desc(), PulseEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "events": [event_to_dict(e) for e in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


def _daily_row(day, count, revenue, play_time, machines) -> dict[str, Any]:
    return {
        "date": day.isoformat(),
        "event_count": int(count or 0),
        "total_revenue": money(revenue),
        "total_play_time_seconds": int(play_time or 0),
        "average_value": average_value(revenue, count),
        "machine_count": int(machines or 0),
    }


def daily_stats_from_events(db: Session, filters: EventFilters) -> list[dict[str, Any]]:
    rows = (
        _events(db, filters)
        .with_entities(
            PulseEvent.event_date,
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.sum(PulseEvent.duration_seconds),
            func.count(func.distinct(PulseEvent.machine_id)),
        )
        .group_by(PulseEvent.event_date)
        .order_by(PulseEvent.event_date.desc())
        .all()
    )
    return [_daily_row(*r) for r in rows]


def daily_stats_from_rollups(db: Session, filters: EventFilters) -> list[dict[str, Any]]:
    q = db.query(
        DailyRollup.rollup_date,
        func.sum(DailyRollup.event_count),
        func.sum(DailyRollup.total_revenue),
        func.sum(DailyRollup.total_play_time_seconds),
        func.count(func.distinct(DailyRollup.machine_id)),
    )
    rows = (
        _rollup_filter(q, DailyRollup, DailyRollup.rollup_date, filters)
        .group_by(DailyRollup.rollup_date)
        .order_by(DailyRollup.rollup_date.desc())
        .all()
    )
    return [_daily_row(*r) for r in rows]


def daily_stats(
    db: Session,
    start: date | None = None,
    end: date | None = None,
    filters: EventFilters | None = None,
    *,
    use_rollups: bool | None = None,
) -> list[dict[str, Any]]:
    """Per business day, newest first. Rollups are used by default when a machine is the only filter."""
    filters = _with_range(filters, start, end)
    if _use_rollups(filters, use_rollups):
        return daily_stats_from_rollups(db, filters)
    return daily_stats_from_events(db, filters)


# ---------------------------------------------------------------------------
# Hourly
# ---------------------------------------------------------------------------


def _hour_buckets(rows) -> list[dict[str, Any]]:
    by_hour = {int(hour): (count, revenue) for hour, count, revenue in rows}
    out = []
    for hour in range(HOURS_PER_DAY):
        count, revenue = by_hour.get(hour, (0, None))
        out.append({
            "hour": hour,
            "event_count": int(count or 0),
            "revenue": money(revenue),
            "average_value": average_value(revenue, count),
        })
    return out


def hourly_profile_from_events(db: Session, filters: EventFilters) -> list[dict[str, Any]]:
    rows = (
        _events(db, filters)
        .with_entities(PulseEvent.hour, func.count(PulseEvent.id), func.sum(PulseEvent.value))
        .group_by(PulseEvent.hour)
        .all()
    )
    return _hour_buckets(rows)


def hourly_profile_from_rollups(db: Session, filters: EventFilters) -> list[dict[str, Any]]:
    q = db.query(HourlyRollup.hour, func.sum(HourlyRollup.event_count), func.sum(HourlyRollup.revenue))
    rows = _rollup_filter(q, HourlyRollup, HourlyRollup.rollup_date, filters).group_by(HourlyRollup.hour).all()
    return _hour_buckets(rows)


def hourly_profile(
    db: Session,
    filters: EventFilters | None = None,
    *,
    use_rollups: bool | None = None,
) -> list[dict[str, Any]]:
    """Always 24 buckets (hour 0..23) across the matched range; empty hours are zero."""
    filters = filters or EventFilters()
    if _use_rollups(filters, use_rollups):
        return hourly_profile_from_rollups(db, filters)
    return hourly_profile_from_events(db, filters)


def peak_hour(profile: list[dict[str, Any]]) -> int | None:
    """Busiest hour of a profile; earliest wins ties. None when the profile is empty."""
    best = None
    for bucket in profile:
        if bucket["event_count"] and (best is None or bucket["event_count"] > best["event_count"]):
            best = bucket
    return best["hour"] if best else None


# ---------------------------------------------------------------------------
# Rankings and trends
# ---------------------------------------------------------------------------


def top_machines_by_revenue(
    db: Session,
    n: int = TOP_MACHINES_DEFAULT,
    filters: EventFilters | None = None,
) -> list[dict[str, Any]]:
    """Highest revenue first; equal revenue ordered by machine id so ranks are stable."""
    if n < 1 or n > TOP_MACHINES_MAX:
        raise ValidationError(f"n must be between 1 and {TOP_MACHINES_MAX}", n=n)
    filters = filters or EventFilters()
    revenue = func.sum(PulseEvent.value)
    rows = (
        _events(db, filters)
        .with_entities(
            PulseEvent.machine_id,
            func.max(PulseEvent.machine_code),
            func.count(PulseEvent.id),
            revenue,
            func.max(PulseEvent.occurred_at),
        )
        .group_by(PulseEvent.machine_id)
        .order_by(revenue.desc(), PulseEvent.machine_id.asc())
        .limit(n)
        .all()
    )
    ranked = []
    for rank, (machine_id, code, count, total, last_at) in enumerate(rows, start=1):
        # Location as of the machine's latest matching event
        latest = (
            _events(db, filters)
            .filter(PulseEvent.machine_id == machine_id)
            .order_by(PulseEvent.occurred_at.desc(), PulseEvent.id.desc())
            .first()
        )
        ranked.append({
            "rank": rank,
            "machine_id": machine_id,
            "machine_code": code,
            "event_count": int(count),
            "total_revenue": money(total),
            "average_value": average_value(total, count),
            "last_event_at": iso(last_at),
            "region": latest.region if latest else None,
            "city": latest.city if latest else None,
        })
    return ranked


def region_trend(db: Session, start: date | None = None, end: date | None = None) -> list[dict[str, Any]]:
    """Per (region, year, month): totals, distinct machines and revenue per machine."""
    filters = EventFilters(start_date=start, end_date=end)
    rows = (
        _events(db, filters)
        .with_entities(
            PulseEvent.region,
            PulseEvent.year,
            PulseEvent.month,
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.count(func.distinct(PulseEvent.machine_id)),
        )
        .group_by(PulseEvent.region, PulseEvent.year, PulseEvent.month)
        .all()
    )
    out = []
    for region, year, month, count, revenue, machines in rows:
        total = money(revenue)
        out.append({
            "region": region,
            "year": int(year),
            "month": int(month),
            "event_count": int(count),
            "total_revenue": total,
            "machine_count": int(machines),
            "revenue_per_machine": money(total / int(machines)) if machines else money(0),
        })
    out.sort(key=lambda r: (r["region"] or "", -r["year"], -r["month"]))
    return out


# ---------------------------------------------------------------------------
# Dashboard views
# ---------------------------------------------------------------------------


def _window(db: Session, since: datetime, until: datetime) -> dict[str, Any]:
    count, revenue, machines = (
        db.query(
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.count(func.distinct(PulseEvent.machine_id)),
        )
        .filter(
            PulseEvent.is_deleted.is_(False),
            PulseEvent.occurred_at >= since,
            PulseEvent.occurred_at <= until,
        )
        .one()
    )
    return {
        "since": since.isoformat(),
        "event_count": int(count or 0),
        "total_revenue": money(revenue),
        "machine_count": int(machines or 0),
    }


def realtime_snapshot(db: Session, now: datetime | None = None) -> dict[str, Any]:
    """Last 24h and last hour totals plus the latest events, as of `now` (UTC)."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    latest = (
        db.query(PulseEvent)
        .filter(PulseEvent.is_deleted.is_(False), PulseEvent.occurred_at <= now)
        .order_by(PulseEvent.occurred_at.desc(), PulseEvent.id.desc())
        .limit(REALTIME_LATEST_EVENTS)
        .all()
    )
    last_24h = _window(db, now - timedelta(hours=24), now)
    return {
        "as_of": now.isoformat(),
        "last_24h": last_24h,
        "last_hour": _window(db, now - timedelta(hours=1), now),
        "active_machines": last_24h["machine_count"],
        "latest_events": [event_brief(e) for e in latest],
    }


def summary_stats(db: Session, filters: EventFilters | None = None) -> dict[str, Any]:
    """Totals and averages over the matched events, with a breakdown by game type."""
    filters = filters or EventFilters()
    count, revenue, play_time, avg_players, avg_duration, first_at, last_at = (
        _events(db, filters)
        .with_entities(
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
            func.sum(PulseEvent.duration_seconds),
            func.avg(PulseEvent.players_count),
            func.avg(PulseEvent.duration_seconds),
            func.min(PulseEvent.occurred_at),
            func.max(PulseEvent.occurred_at),
        )
        .one()
    )
    by_type = (
        _events(db, filters)
        .with_entities(PulseEvent.game_type, func.count(PulseEvent.id), func.sum(PulseEvent.value))
        .group_by(PulseEvent.game_type)
        .order_by(PulseEvent.game_type.asc())
        .all()
    )
    return {
        "event_count": int(count or 0),
        "total_revenue": money(revenue),
        "total_play_time_seconds": int(play_time or 0),
        "average_value": average_value(revenue, count),
        "average_players": mean(avg_players),
        "average_duration_seconds": mean(avg_duration),
        "first_event_at": iso(first_at),
        "last_event_at": iso(last_at),
        "by_game_type": [
            {"game_type": gt, "event_count": int(c), "total_revenue": money(r)}
            for gt, c, r in by_type
        ],
    }


def filter_options(db: Session) -> dict[str, list[str]]:
    """Distinct regions, cities and machine codes seen on live events (for filter dropdowns)."""
    def distinct(col) -> list[str]:
        rows = (
            db.query(col)
            .filter(PulseEvent.is_deleted.is_(False), col.isnot(None), col != "")
            .distinct()
            .order_by(col.asc())
            .all()
        )
        return [r[0] for r in rows]

    return {
        "regions": distinct(PulseEvent.region),
        "cities": distinct(PulseEvent.city),
        "machine_codes": distinct(PulseEvent.machine_code),
    }


def fill_level_pct(revenue: Decimal, capacity: Decimal | None) -> float | None:
    if capacity is None or capacity <= 0:
        return None
    return round(min(100.0, float(revenue) / float(capacity) * 100), 2)


def machine_counters_snapshot(db: Session, machine: ResolvedMachine, today: date | None = None) -> dict[str, Any]:
    """Lifetime counters plus today's totals (business date, from the daily rollup) and cash fill level."""
    today = today or datetime.now(settings.tz).date()
    counters = db.query(MachineCounters).filter(MachineCounters.machine_id == machine.id).first()
    daily = (
        db.query(DailyRollup)
        .filter(DailyRollup.machine_id == machine.id, DailyRollup.rollup_date == today)
        .first()
    )
    out = counters_to_dict(counters, machine_id=machine.id)
    out.update({
        "machine_code": machine.code,
        "currency": machine.currency,
        "status": machine.status,
        "today": {
            "date": today.isoformat(),
            "event_count": daily.event_count if daily else 0,
            "total_revenue": money(daily.total_revenue if daily else None),
        },
        "capacity": money(machine.capacity) if machine.capacity is not None else None,
        "fill_level_pct": fill_level_pct(out["total_revenue"], machine.capacity),
    })
    return out
