"""Fixed filter set shared by every stats query (machine, location, business-date range)."""
from dataclasses import dataclass
from datetime import date

from coinpulse.core.errors import ValidationError
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.machines.types import normalize_code


@dataclass(frozen=True)
class EventFilters:
    machine_id: int | None = None
    machine_code: str | None = None
    region: str | None = None
    city: str | None = None
    start_date: date | None = None  # inclusive, business date
    end_date: date | None = None  # inclusive, business date

    def __post_init__(self):
        if self.machine_code is not None:
            object.__setattr__(self, "machine_code", normalize_code(self.machine_code) or None)
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError(
                "start must not be after end",
                start=self.start_date.isoformat(),
                end=self.end_date.isoformat(),
            )

    @classmethod
    def from_machine_param(cls, machine: str | None, **kwargs) -> "EventFilters":
        """`?machine=` takes either a numeric id or a code."""
        machine = (machine or "").strip()
        if not machine:
            return cls(**kwargs)
        if machine.isdigit():
            return cls(machine_id=int(machine), **kwargs)
        return cls(machine_code=machine, **kwargs)

    @property
    def has_machine(self) -> bool:
        return self.machine_id is not None or self.machine_code is not None

    @property
    def rollup_compatible(self) -> bool:
        """Rollups are keyed by machine and date only; location filters need the event log."""
        return self.region is None and self.city is None

    def apply(self, q):
        """Narrow a PulseEvent query. Deleted events are always excluded."""
        q = q.filter(PulseEvent.is_deleted.is_(False))
        if self.machine_id is not None:
            q = q.filter(PulseEvent.machine_id == self.machine_id)
        if self.machine_code is not None:
            q = q.filter(PulseEvent.machine_code == self.machine_code)
        if self.region is not None:
            q = q.filter(PulseEvent.region == self.region)
        if self.city is not None:
            q = q.filter(PulseEvent.city == self.city)
        if self.start_date is not None:
            q = q.filter(PulseEvent.event_date >= self.start_date)
        if self.end_date is not None:
            q = q.filter(PulseEvent.event_date <= self.end_date)
        return q
