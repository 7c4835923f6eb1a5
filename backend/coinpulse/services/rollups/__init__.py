"""
Derived state kept next to pulse_events: machine_counters, daily_rollups, hourly_rollups.
- refresh_for_event: the per-event refresh (one transaction, machine lock, conflict retries).
- refresh_* helpers recompute one key from the event log; safe to call any number of times.
- find_drift: read-only comparison of derived rows with the event log.
"""
from coinpulse.services.rollups.drift import find_drift, unprocessed_event_ids
from coinpulse.services.rollups.locks import KeyedLocks, machine_lock
from coinpulse.services.rollups.update import (
    apply_rollups_for_event,
    elapsed_ms,
    money,
    peak_hour_for_day,
    refresh_daily_rollup,
    refresh_for_event,
    refresh_hourly_rollup,
    refresh_machine_counters,
)

__all__ = [
    "KeyedLocks",
    "apply_rollups_for_event",
    "elapsed_ms",
    "find_drift",
    "machine_lock",
    "money",
    "peak_hour_for_day",
    "refresh_daily_rollup",
    "refresh_for_event",
    "refresh_hourly_rollup",
    "refresh_machine_counters",
    "unprocessed_event_ids",
]
