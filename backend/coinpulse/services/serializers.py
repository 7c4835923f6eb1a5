"""Row -> dict shapes shared by ingestion responses and stats endpoints."""
from typing import Any

from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.rollups.update import money
from coinpulse.services.temporal import as_aware_utc


def iso(dt) -> str | None:
    dt = as_aware_utc(dt)
    return dt.isoformat() if dt else None


def event_to_dict(e: PulseEvent) -> dict[str, Any]:
    return {
        "id": e.id,
        "machine_id": e.machine_id,
        "machine_code": e.machine_code,
        "value": money(e.value),
        "currency": e.currency,
        "occurred_at": iso(e.occurred_at),
        "location": {"region": e.region, "city": e.city, "address": e.address},
        "temporal": {
            "date": e.event_date.isoformat() if e.event_date else None,
            "year": e.year,
            "month": e.month,
            "day": e.day,
            "day_of_week": e.day_of_week,
            "hour": e.hour,
            "minute": e.minute,
            "quarter": e.quarter,
            "week_of_year": e.week_of_year,
        },
        "game": {
            "type": e.game_type,
            "players_count": e.players_count,
            "duration_seconds": e.duration_seconds,
            "credits_used": e.credits_used,
        },
        "metadata": {
            "sequence_number": e.sequence_number,
            "origin_ip": e.origin_ip,
            "client_id": e.client_id,
            "processing_ms": e.processing_ms,
        },
        "processed": bool(e.processed),
        "deleted": bool(e.is_deleted),
    }


def event_brief(e: PulseEvent) -> dict[str, Any]:
    """Compact form for 'latest events' lists."""
    return {
        "id": e.id,
        "machine_code": e.machine_code,
        "value": money(e.value),
        "currency": e.currency,
        "occurred_at": iso(e.occurred_at),
        "region": e.region,
    }


def counters_to_dict(c: MachineCounters | None, machine_id: int | None = None) -> dict[str, Any]:
    if c is None:
        return {
            "machine_id": machine_id,
            "total_events": 0,
            "total_revenue": money(0),
            "total_play_time_seconds": 0,
            "last_event_at": None,
        }
    return {
        "machine_id": c.machine_id,
        "total_events": c.total_events,
        "total_revenue": money(c.total_revenue),
        "total_play_time_seconds": c.total_play_time_seconds,
        "last_event_at": iso(c.last_event_at),
    }
