"""Machine directory backed by the local machines table."""
from decimal import Decimal

from sqlalchemy.orm import Session

from coinpulse.models.machine import Machine
from coinpulse.services.machines.types import MachineLocation, ResolvedMachine, normalize_code


def machine_to_resolved(row: Machine) -> ResolvedMachine:
    return ResolvedMachine(
        id=row.id,
        code=row.code,
        status=(row.status or "").lower(),
        is_active=bool(row.is_active),
        location=MachineLocation(region=row.region, city=row.city, address=row.address),
        default_value=Decimal(row.pulse_value),
        currency=row.currency,
        capacity=Decimal(row.capacity) if row.capacity is not None else None,
    )


class DatabaseMachineDirectory:
    """Reads machines straight from the database session used for the request."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def resolve(
        self,
        machine_id: int | None = None,
        machine_code: str | None = None,
    ) -> ResolvedMachine | None:
        q = self._db.query(Machine)
        if machine_id is not None:
            row = q.filter(Machine.id == machine_id).first()
        elif machine_code:
            row = q.filter(Machine.code == normalize_code(machine_code)).first()
        else:
            return None
        return machine_to_resolved(row) if row else None
