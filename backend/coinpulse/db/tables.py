"""
Single source of truth for database tables that exist after migrations.

Use these names when writing raw SQL. alembic/env.py asserts the registered models match.
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "machines",
    "pulse_events",
    "machine_counters",
    "daily_rollups",
    "hourly_rollups",
)

# Derived state: rebuildable from pulse_events (counters and rollups only).
DERIVED_TABLE_NAMES = (
    "machine_counters",
    "daily_rollups",
    "hourly_rollups",
)
