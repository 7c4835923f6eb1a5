"""Normalized machine shape returned by every directory (local table or remote registry)."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from coinpulse.core.constants import CURRENCIES, DEFAULT_CURRENCY, MACHINE_STATUS_ACTIVE, MACHINE_STATUSES


def normalize_code(code: str | None) -> str:
    """Machine codes are stored and compared upper-case, without surrounding spaces."""
    return (code or "").strip().upper()


@dataclass(frozen=True)
class MachineLocation:
    region: str
    city: str
    address: str


@dataclass(frozen=True)
class ResolvedMachine:
    """What ingestion needs to know about a machine at the moment an event arrives."""

    id: int
    code: str
    status: str
    is_active: bool
    location: MachineLocation
    default_value: Decimal
    currency: str = DEFAULT_CURRENCY
    capacity: Decimal | None = None

    @property
    def operational(self) -> bool:
        return self.is_active and self.status == MACHINE_STATUS_ACTIVE

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ResolvedMachine":
        """Build from a registry JSON document: {id, code, status, is_active, location{...}, pulse_value, ...}."""
        location = payload.get("location") or {}
        capacity = payload.get("capacity")
        status = (payload.get("status") or MACHINE_STATUS_ACTIVE).strip().lower()
        if status not in MACHINE_STATUSES:
            raise ValueError(f"Unknown machine status: {status}")
        currency = (payload.get("currency") or DEFAULT_CURRENCY).upper()
        if currency not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {currency}")
        pulse_value = Decimal(str(payload.get("pulse_value", "1")))
        if not pulse_value > 0:
            raise ValueError(f"pulse_value must be positive, got {pulse_value}")
        return cls(
            id=int(payload["id"]),
            code=normalize_code(payload.get("code")),
            status=status,
            is_active=bool(payload.get("is_active", True)),
            location=MachineLocation(
                region=location.get("region") or "",
                city=location.get("city") or "",
                address=location.get("address") or "",
            ),
            default_value=pulse_value,
            currency=currency,
            capacity=Decimal(str(capacity)) if capacity is not None else None,
        )
