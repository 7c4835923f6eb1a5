"""
Events API: record pulses/games (single and batch), list, fetch and soft-delete events.

Routes are sync so they run in the threadpool; per-machine writers are serialised inside
the ingestion service.
"""
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from coinpulse.api.routes.deps import event_filters, raise_http, request_meta
from coinpulse.core.constants import EVENTS_DEFAULT_PAGE_LIMIT
from coinpulse.core.errors import PulseError
from coinpulse.db.session import get_db
from coinpulse.services.ingestion import (
    PulseInput,
    RecordOutcome,
    RequestMeta,
    get_event,
    record_event,
    record_events,
    soft_delete_event,
)
from coinpulse.services.machines import get_machine_directory
from coinpulse.services.serializers import counters_to_dict, event_to_dict
from coinpulse.services.stats import EventFilters, events_in_range

router = APIRouter()


class BatchRequest(BaseModel):
    # Items are validated one by one so a malformed item fails alone
    events: list[Any] = Field(..., min_length=1)


def _outcome_body(outcome: RecordOutcome) -> dict[str, Any]:
    return {
        "event": event_to_dict(outcome.event),
        "counters": counters_to_dict(outcome.counters) if outcome.counters is not None else None,
        "warning": outcome.warning.to_dict() if outcome.warning else None,
    }


@router.post("/events", status_code=201)
def create_event(
    body: PulseInput,
    db: Session = Depends(get_db),
    meta: RequestMeta = Depends(request_meta),
) -> dict[str, Any]:
    """
    Record one pulse or game. 201 even when counters/rollups could not be refreshed:
    the event is durable, `warning` is set and `event.processed` is false.
    """
    try:
        outcome = record_event(db, get_machine_directory(db), body, meta)
    except PulseError as e:
        raise_http(e)
    return _outcome_body(outcome)


@router.post("/events/batch")
def create_events_batch(
    body: BatchRequest,
    db: Session = Depends(get_db),
    meta: RequestMeta = Depends(request_meta),
) -> dict[str, Any]:
    """Record each item independently; returns per-item results and a summary."""
    try:
        outcome = record_events(db, get_machine_directory(db), body.events, meta)
    except PulseError as e:
        raise_http(e)
    return outcome.to_dict()


@router.get("/events")
def list_events(
    db: Session = Depends(get_db),
    filters: EventFilters = Depends(event_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(EVENTS_DEFAULT_PAGE_LIMIT, ge=1),
) -> dict[str, Any]:
    """Events newest first, filtered by machine, region, city and business-date range."""
    try:
        return events_in_range(db, filters=filters, page=page, limit=limit)
    except PulseError as e:
        raise_http(e)


@router.get("/events/{event_id}")
def read_event(event_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        return event_to_dict(get_event(db, event_id))
    except PulseError as e:
        raise_http(e)


@router.delete("/events/{event_id}")
def delete_event(event_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Soft delete: the row stays, counters and the event's day/hour rollups are recomputed without it."""
    try:
        outcome = soft_delete_event(db, event_id)
    except PulseError as e:
        raise_http(e)
    return _outcome_body(outcome)
