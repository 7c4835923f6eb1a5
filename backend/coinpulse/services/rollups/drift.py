"""
Read-only consistency report: derived rows versus a fresh aggregate of pulse_events.
Lists what a reconciliation pass would have to fix; it never writes.
"""
import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from coinpulse.models.daily_rollup import DailyRollup
from coinpulse.models.hourly_rollup import HourlyRollup
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.rollups.update import money

logger = logging.getLogger(__name__)


def _compare(table: str, expected: dict, actual: dict) -> list[dict[str, Any]]:
    drift = []
    for key in sorted(set(expected) | set(actual), key=str):
        want = expected.get(key, (0, money(0)))
        got = actual.get(key, (0, money(0)))
        if want != got:
            drift.append({
                "table": table,
                "key": [str(k) for k in key],
                "expected": {"event_count": want[0], "revenue": str(want[1])},
                "actual": {"event_count": got[0], "revenue": str(got[1])},
            })
    return drift


def find_drift(db: Session) -> list[dict[str, Any]]:
    """Every counters/daily/hourly key whose (count, revenue) differs from the event log."""
    live = PulseEvent.is_deleted.is_(False)

    expected = {
        (m,): (int(c), money(r))
        for m, c, r in db.query(PulseEvent.machine_id, func.count(PulseEvent.id), func.sum(PulseEvent.value))
        .filter(live).group_by(PulseEvent.machine_id)
    }
    actual = {
        (row.machine_id,): (row.total_events, money(row.total_revenue))
        for row in db.query(MachineCounters)
    }
    # A counters row at zero for a machine whose events were all deleted is consistent
    actual = {k: v for k, v in actual.items() if v != (0, money(0)) or k in expected}
    drift = _compare("machine_counters", expected, actual)

    expected = {
        (m, d): (int(c), money(r))
        for m, d, c, r in db.query(
            PulseEvent.machine_id, PulseEvent.event_date, func.count(PulseEvent.id), func.sum(PulseEvent.value)
        ).filter(live).group_by(PulseEvent.machine_id, PulseEvent.event_date)
    }
    actual = {
        (row.machine_id, row.rollup_date): (row.event_count, money(row.total_revenue))
        for row in db.query(DailyRollup)
    }
    drift += _compare("daily_rollups", expected, actual)

    expected = {
        (m, d, h): (int(c), money(r))
        for m, d, h, c, r in db.query(
            PulseEvent.machine_id,
            PulseEvent.event_date,
            PulseEvent.hour,
            func.count(PulseEvent.id),
            func.sum(PulseEvent.value),
        ).filter(live).group_by(PulseEvent.machine_id, PulseEvent.event_date, PulseEvent.hour)
    }
    actual = {
        (row.machine_id, row.rollup_date, row.hour): (row.event_count, money(row.revenue))
        for row in db.query(HourlyRollup)
    }
    drift += _compare("hourly_rollups", expected, actual)

    if drift:
        logger.warning("Rollup drift: %s key(s) differ from pulse_events", len(drift))
    return drift


def unprocessed_event_ids(db: Session, limit: int = 1000) -> list[int]:
    """Events stored but never folded into counters/rollups (processed=false), oldest first."""
    rows = (
        db.query(PulseEvent.id)
        .filter(PulseEvent.processed.is_(False))
        .order_by(PulseEvent.id.asc())
        .limit(limit)
        .all()
    )
    return [r[0] for r in rows]
