"""
Calendar fields of an event, derived once from occurred_at in the business time zone.
Pure functions: the same instant always yields the same fields.
"""
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone, tzinfo


@dataclass(frozen=True)
class TemporalFields:
    event_date: date
    year: int
    month: int
    day: int
    day_of_week: int  # 0=Sunday .. 6=Saturday
    hour: int
    minute: int
    quarter: int
    week_of_year: int

    def as_columns(self) -> dict:
        """Column values for PulseEvent."""
        return asdict(self)


def to_utc(dt: datetime, tz: tzinfo) -> datetime:
    """Naive datetimes are wall-clock time in the business zone; aware ones are converted."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(timezone.utc)


def as_aware_utc(dt: datetime | None) -> datetime | None:
    """Rows read back from SQLite come without tzinfo; stored values are always UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def sunday_based_weekday(d: date) -> int:
    """0=Sunday, 1=Monday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def week_of_year(d: date) -> int:
    """Week number with weeks starting on Sunday; the week holding Jan 1 is week 1 (1-54)."""
    jan1 = date(d.year, 1, 1)
    elapsed = (d - jan1).days
    return math.ceil((elapsed + sunday_based_weekday(jan1) + 1) / 7)


def derive_temporal(occurred_at: datetime, tz: tzinfo) -> TemporalFields:
    local = to_utc(occurred_at, tz).astimezone(tz)
    d = local.date()
    return TemporalFields(
        event_date=d,
        year=local.year,
        month=local.month,
        day=local.day,
        day_of_week=sunday_based_weekday(d),
        hour=local.hour,
        minute=local.minute,
        quarter=math.ceil(local.month / 3),
        week_of_year=week_of_year(d),
    )
