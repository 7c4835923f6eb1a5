"""
Stats API: daily, hourly, top machines, region trend and dashboard views. Read-only.

`source` on /stats/daily and /stats/hourly: auto (rollups when a machine is the only filter),
events (always scan the event log) or rollups (force the shortcut; rejected with location filters).
"""
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coinpulse.api.routes.deps import event_filters, raise_http
from coinpulse.core.constants import TOP_MACHINES_DEFAULT, TOP_MACHINES_MAX
from coinpulse.core.errors import PulseError, ValidationError
from coinpulse.db.session import get_db
from coinpulse.services.stats import (
    EventFilters,
    daily_stats,
    filter_options,
    hourly_profile,
    peak_hour,
    realtime_snapshot,
    region_trend,
    summary_stats,
    top_machines_by_revenue,
)

router = APIRouter()

Source = Literal["auto", "events", "rollups"]
_USE_ROLLUPS = {"auto": None, "events": False, "rollups": True}


@router.get("/stats/daily")
def stats_daily(
    db: Session = Depends(get_db),
    filters: EventFilters = Depends(event_filters),
    source: Source = Query("auto"),
) -> dict[str, Any]:
    try:
        return {"days": daily_stats(db, filters=filters, use_rollups=_USE_ROLLUPS[source])}
    except PulseError as e:
        raise_http(e)


@router.get("/stats/hourly")
def stats_hourly(
    db: Session = Depends(get_db),
    filters: EventFilters = Depends(event_filters),
    source: Source = Query("auto"),
) -> dict[str, Any]:
    """24 buckets plus the busiest hour."""
    try:
        hours = hourly_profile(db, filters, use_rollups=_USE_ROLLUPS[source])
    except PulseError as e:
        raise_http(e)
    return {"hours": hours, "peak_hour": peak_hour(hours)}


@router.get("/stats/top")
def stats_top(
    db: Session = Depends(get_db),
    filters: EventFilters = Depends(event_filters),
    n: int = Query(TOP_MACHINES_DEFAULT, ge=1, le=TOP_MACHINES_MAX),
) -> dict[str, Any]:
    try:
        return {"machines": top_machines_by_revenue(db, n, filters)}
    except PulseError as e:
        raise_http(e)


@router.get("/stats/regions")
def stats_regions(
    db: Session = Depends(get_db),
    start: date | None = Query(None),
    end: date | None = Query(None),
) -> dict[str, Any]:
    """Per region and month: events, revenue, distinct machines and revenue per machine."""
    try:
        if start and end and start > end:
            raise ValidationError("start must not be after end", start=start.isoformat(), end=end.isoformat())
        return {"regions": region_trend(db, start, end)}
    except PulseError as e:
        raise_http(e)


@router.get("/stats/realtime")
def stats_realtime(db: Session = Depends(get_db)) -> dict[str, Any]:
    return realtime_snapshot(db)


@router.get("/stats/summary")
def stats_summary(
    db: Session = Depends(get_db),
    filters: EventFilters = Depends(event_filters),
) -> dict[str, Any]:
    return summary_stats(db, filters)


@router.get("/stats/filters")
def stats_filters(db: Session = Depends(get_db)) -> dict[str, list[str]]:
    """Values for filter dropdowns."""
    return filter_options(db)
