"""
Machine counters: lifetime totals, today's totals and cash fill level for one machine.
"""
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coinpulse.api.routes.deps import raise_http
from coinpulse.core.errors import NotFound, PulseError
from coinpulse.db.session import get_db
from coinpulse.services.machines import get_machine_directory
from coinpulse.services.stats import machine_counters_snapshot

router = APIRouter()


@router.get("/machines/{machine}/counters")
def machine_counters(machine: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    """`machine` is a numeric id or a machine code."""
    directory = get_machine_directory(db)
    try:
        ref = machine.strip()
        if ref.isdigit():
            resolved = directory.resolve(machine_id=int(ref))
        else:
            resolved = directory.resolve(machine_code=ref)
        if resolved is None:
            raise NotFound(f"Machine {ref} not found", machine=ref)
        return machine_counters_snapshot(db, resolved)
    except PulseError as e:
        raise_http(e)
