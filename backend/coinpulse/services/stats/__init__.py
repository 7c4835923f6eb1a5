"""Read-only stats over pulse_events, with rollup shortcuts for per-machine daily and hourly views."""
from coinpulse.services.stats.filters import EventFilters
from coinpulse.services.stats.queries import (
    average_value,
    daily_stats,
    daily_stats_from_events,
    daily_stats_from_rollups,
    events_in_range,
    filter_options,
    hourly_profile,
    hourly_profile_from_events,
    hourly_profile_from_rollups,
    machine_counters_snapshot,
    peak_hour,
    realtime_snapshot,
    region_trend,
    summary_stats,
    top_machines_by_revenue,
)

__all__ = [
    "EventFilters",
    "average_value",
    "daily_stats",
    "daily_stats_from_events",
    "daily_stats_from_rollups",
    "events_in_range",
    "filter_options",
    "hourly_profile",
    "hourly_profile_from_events",
    "hourly_profile_from_rollups",
    "machine_counters_snapshot",
    "peak_hour",
    "realtime_snapshot",
    "region_trend",
    "summary_stats",
    "top_machines_by_revenue",
]
