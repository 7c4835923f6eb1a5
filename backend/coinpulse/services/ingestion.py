"""
Ingestion: one reported pulse/game -> durable event row -> refreshed counters and rollups.

Order per event:
  1. validate input and resolve the machine (no write before both pass)
  2. derive calendar fields, copy the machine's location/currency, insert the event with
     processed=false and commit (the event is now durable)
  3. refresh counters, daily and hourly rollups in one transaction under the machine lock and
     flip processed=true in that same commit (rollups.refresh_for_event)
If step 3 fails the event is kept with processed=false and the caller gets a success with a
PartialProcessingError warning; a later reconciliation can find it by the flag.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coinpulse.config import settings
from coinpulse.core.constants import GAME_TYPE_PULSE, GAME_TYPES, MAX_FUTURE_SKEW_SECONDS
from coinpulse.core.errors import (
    CLIENT_ERRORS,
    MachineNotOperational,
    NotFound,
    PartialProcessingError,
    PulseError,
    ValidationError,
)
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.machines import MachineDirectory, ResolvedMachine
from coinpulse.services.rollups import elapsed_ms, money, refresh_for_event
from coinpulse.services.temporal import derive_temporal, to_utc

logger = logging.getLogger(__name__)


class PulseInput(BaseModel):
    """One reported event. Either machine_id or machine_code identifies the machine."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    machine_id: int | None = Field(None, ge=1)
    machine_code: str | None = Field(None, min_length=1, max_length=20)
    value: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2, description="Defaults to the machine pulse value")
    occurred_at: datetime | None = Field(None, description="Defaults to ingestion time; naive = business time zone")
    sequence_number: int | None = Field(None, ge=1)
    game_type: str = GAME_TYPE_PULSE
    players_count: int = Field(1, ge=1, le=64)
    duration_seconds: int = Field(0, ge=0, le=86_400)
    credits_used: int = Field(1, ge=0)

    @field_validator("game_type", mode="before")
    @classmethod
    def known_game_type(cls, v: Any) -> Any:
        if v is None:
            return GAME_TYPE_PULSE
        if isinstance(v, str):
            v = v.strip().lower()
        if v not in GAME_TYPES:
            raise ValueError(f"game_type must be one of {', '.join(GAME_TYPES)}")
        return v

    @model_validator(mode="after")
    def machine_reference(self) -> "PulseInput":
        if self.machine_id is None and not (self.machine_code or "").strip():
            raise ValueError("machine_id or machine_code is required")
        return self


@dataclass(frozen=True)
class RequestMeta:
    """Caller metadata stored on the event (not used for processing)."""
    origin_ip: str | None = None
    client_id: str | None = None


@dataclass
class RecordOutcome:
    event: PulseEvent
    counters: MachineCounters | None
    warning: PartialProcessingError | None = None

    @property
    def processed(self) -> bool:
        return self.warning is None


@dataclass
class BatchItemResult:
    index: int
    ok: bool
    event_id: int | None = None
    processed: bool | None = None
    error: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"index": self.index, "ok": True, "event_id": self.event_id, "processed": self.processed}
        return {"index": self.index, "ok": False, "error": self.error, "message": self.message}


@dataclass
class BatchOutcome:
    results: list[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {"total": len(self.results), "succeeded": self.succeeded, "failed": self.failed},
            "results": [r.to_dict() for r in self.results],
        }


def parse_pulse_input(data: Any) -> PulseInput:
    """Validate one raw item (batch bodies are validated item by item)."""
    if isinstance(data, PulseInput):
        return data
    if not isinstance(data, dict):
        raise ValidationError("Event must be a JSON object")
    try:
        return PulseInput.model_validate(data)
    except pydantic.ValidationError as e:
        problems = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
            for err in e.errors()
        ]
        raise ValidationError("Invalid event", problems=problems) from e


def resolve_operational_machine(directory: MachineDirectory, data: PulseInput) -> ResolvedMachine:
    """NotFound for unknown or deactivated machines; MachineNotOperational for any status but active."""
    ref = data.machine_id if data.machine_id is not None else data.machine_code
    machine = directory.resolve(machine_id=data.machine_id, machine_code=data.machine_code)
    if machine is None or not machine.is_active:
        raise NotFound(f"No active machine {ref}", machine=str(ref))
    if not machine.operational:
        raise MachineNotOperational(
            f"Machine {machine.code} is in status {machine.status}",
            machine=machine.code,
            status=machine.status,
        )
    return machine


def record_event(
    db: Session,
    directory: MachineDirectory,
    data: PulseInput,
    meta: RequestMeta | None = None,
    *,
    now: datetime | None = None,
) -> RecordOutcome:
    """Store one event and refresh its derived rows. See module docstring for the ordering contract."""
    started = time.perf_counter()
    meta = meta or RequestMeta()
    tz = settings.tz
    now = now or datetime.now(timezone.utc)

    occurred_at = to_utc(data.occurred_at, tz) if data.occurred_at else now
    if occurred_at > now + timedelta(seconds=MAX_FUTURE_SKEW_SECONDS):
        raise ValidationError("occurred_at is in the future", occurred_at=occurred_at.isoformat())

    machine = resolve_operational_machine(directory, data)
    value = data.value if data.value is not None else machine.default_value
    if not value > 0:
        raise ValidationError(
            f"Machine {machine.code} has no positive pulse value; send an explicit value",
            machine=machine.code,
        )
    temporal = derive_temporal(occurred_at, tz)

    event = PulseEvent(
        machine_id=machine.id,
        machine_code=machine.code,
        value=money(value),
        currency=machine.currency,
        occurred_at=occurred_at,
        **temporal.as_columns(),
        region=machine.location.region,
        city=machine.location.city,
        address=machine.location.address,
        game_type=data.game_type,
        players_count=data.players_count,
        duration_seconds=data.duration_seconds,
        credits_used=data.credits_used,
        sequence_number=data.sequence_number,
        origin_ip=meta.origin_ip,
        client_id=(meta.client_id or "")[:500] or None,
        processing_ms=elapsed_ms(started),
        processed=False,
        is_deleted=False,
    )
    db.add(event)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    event_id = event.id

    counters = None
    warning = None
    try:
        counters = refresh_for_event(db, event_id, retries=settings.rollup_conflict_retries, started=started)
    except (PulseError, SQLAlchemyError) as e:
        db.rollback()
        warning = PartialProcessingError(
            "Event stored; counters and rollups pending reconciliation",
            event_id=event_id,
            reason=str(e),
        )
        logger.warning("Event %s (machine %s) stored with processed=false: %s", event_id, machine.code, e)

    logger.info(
        "Event %s recorded: %s %s %s at %s",
        event_id, machine.code, event.value, machine.currency, occurred_at.isoformat(),
    )
    return RecordOutcome(event=event, counters=counters, warning=warning)


def record_events(
    db: Session,
    directory: MachineDirectory,
    items: list[Any],
    meta: RequestMeta | None = None,
) -> BatchOutcome:
    """
    Record each item independently and in order; one bad item never aborts the rest.
    Items of the same machine are serialised by the machine lock inside record_event.
    """
    if len(items) > settings.batch_max_items:
        raise ValidationError(
            f"Batch too large: {len(items)} items (max {settings.batch_max_items})",
            max_items=settings.batch_max_items,
        )
    outcome = BatchOutcome()
    for index, item in enumerate(items):
        try:
            data = parse_pulse_input(item)
            result = record_event(db, directory, data, meta)
        except PulseError as e:
            if not isinstance(e, CLIENT_ERRORS):
                logger.warning("Batch item %s failed: %s", index, e)
            outcome.results.append(BatchItemResult(index=index, ok=False, error=e.code, message=e.message))
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Batch item %s: storage error", index)
            outcome.results.append(BatchItemResult(index=index, ok=False, error="storage_error", message=str(e)))
            continue
        outcome.results.append(
            BatchItemResult(index=index, ok=True, event_id=result.event.id, processed=result.processed)
        )
    logger.info("Batch recorded: %s ok, %s failed", outcome.succeeded, outcome.failed)
    return outcome


def get_event(db: Session, event_id: int) -> PulseEvent:
    event = db.get(PulseEvent, event_id)
    if event is None or event.is_deleted:
        raise NotFound(f"Event {event_id} not found", event_id=event_id)
    return event


def soft_delete_event(db: Session, event_id: int) -> RecordOutcome:
    """
    Flag an event deleted and correct the derived rows it contributed to (counters, its day and
    its hour). Calling it again is harmless; a flagged event still unprocessed is refreshed again.
    """
    event = db.get(PulseEvent, event_id)
    if event is None:
        raise NotFound(f"Event {event_id} not found", event_id=event_id)
    if event.is_deleted and event.processed:
        return RecordOutcome(event=event, counters=None)

    event.is_deleted = True
    event.processed = False
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    counters = None
    warning = None
    try:
        counters = refresh_for_event(db, event_id, retries=settings.rollup_conflict_retries)
    except (PulseError, SQLAlchemyError) as e:
        db.rollback()
        warning = PartialProcessingError(
            "Event deleted; counters and rollups pending reconciliation",
            event_id=event_id,
            reason=str(e),
        )
        logger.warning("Soft delete of event %s left rollups stale: %s", event_id, e)
    logger.info("Event %s soft-deleted", event_id)
    return RecordOutcome(event=event, counters=counters, warning=warning)
