"""Initial tables: machines, pulse_events and the derived counters/daily/hourly rollups."""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "machines",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("region", sa.String(64), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("address", sa.String(200), nullable=False),
        sa.Column("pulse_value", sa.Numeric(12, 2), nullable=False, server_default="1"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("capacity", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_machines_code", "machines", ["code"], unique=True)
    op.create_index("ix_machines_status", "machines", ["status"], unique=False)
    op.create_index("ix_machines_region", "machines", ["region"], unique=False)

    op.create_table(
        "pulse_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("machine_code", sa.String(20), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("minute", sa.Integer(), nullable=False),
        sa.Column("quarter", sa.Integer(), nullable=False),
        sa.Column("week_of_year", sa.Integer(), nullable=False),
        sa.Column("region", sa.String(64), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("address", sa.String(200), nullable=False),
        sa.Column("game_type", sa.String(16), nullable=False, server_default="pulse"),
        sa.Column("players_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_used", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sequence_number", sa.Integer(), nullable=True),
        sa.Column("origin_ip", sa.String(45), nullable=True),
        sa.Column("client_id", sa.String(500), nullable=True),
        sa.Column("processing_ms", sa.Integer(), nullable=True),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pulse_events_machine_id", "pulse_events", ["machine_id"], unique=False)
    op.create_index("ix_pulse_events_machine_code", "pulse_events", ["machine_code"], unique=False)
    op.create_index("ix_pulse_events_occurred_at", "pulse_events", ["occurred_at"], unique=False)
    op.create_index("ix_pulse_events_event_date", "pulse_events", ["event_date"], unique=False)
    op.create_index("ix_pulse_events_hour", "pulse_events", ["hour"], unique=False)
    op.create_index("ix_pulse_events_region", "pulse_events", ["region"], unique=False)
    op.create_index("ix_pulse_events_machine_date_hour", "pulse_events", ["machine_id", "event_date", "hour"], unique=False)
    op.create_index("ix_pulse_events_region_date", "pulse_events", ["region", "event_date"], unique=False)

    op.create_table(
        "machine_counters",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("total_events", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_revenue", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total_play_time_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_event_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("machine_id"),
    )

    op.create_table(
        "daily_rollups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("rollup_date", sa.Date(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_revenue", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total_play_time_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_players", sa.Float(), nullable=True),
        sa.Column("average_duration_seconds", sa.Float(), nullable=True),
        sa.Column("peak_hour", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("machine_id", "rollup_date", name="uq_daily_rollups_machine_date"),
    )
    op.create_index("ix_daily_rollups_machine_id", "daily_rollups", ["machine_id"], unique=False)
    op.create_index("ix_daily_rollups_rollup_date", "daily_rollups", ["rollup_date"], unique=False)

    op.create_table(
        "hourly_rollups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("rollup_date", sa.Date(), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("revenue", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("play_time_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("machine_id", "rollup_date", "hour", name="uq_hourly_rollups_machine_date_hour"),
    )
    op.create_index("ix_hourly_rollups_machine_id", "hourly_rollups", ["machine_id"], unique=False)
    op.create_index("ix_hourly_rollups_rollup_date", "hourly_rollups", ["rollup_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_hourly_rollups_rollup_date", table_name="hourly_rollups")
    op.drop_index("ix_hourly_rollups_machine_id", table_name="hourly_rollups")
    op.drop_table("hourly_rollups")
    op.drop_index("ix_daily_rollups_rollup_date", table_name="daily_rollups")
    op.drop_index("ix_daily_rollups_machine_id", table_name="daily_rollups")
    op.drop_table("daily_rollups")
    op.drop_table("machine_counters")
    for name in (
        "ix_pulse_events_region_date",
        "ix_pulse_events_machine_date_hour",
        "ix_pulse_events_region",
        "ix_pulse_events_hour",
        "ix_pulse_events_event_date",
        "ix_pulse_events_occurred_at",
        "ix_pulse_events_machine_code",
        "ix_pulse_events_machine_id",
    ):
        op.drop_index(name, table_name="pulse_events")
    op.drop_table("pulse_events")
    op.drop_index("ix_machines_region", table_name="machines")
    op.drop_index("ix_machines_status", table_name="machines")
    op.drop_index("ix_machines_code", table_name="machines")
    op.drop_table("machines")
