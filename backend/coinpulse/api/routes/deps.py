"""
Shared route dependencies: domain error mapping, filter parsing, caller metadata.
"""
import logging
from datetime import date
from typing import NoReturn

from fastapi import Query, Request

from coinpulse.core.errors import CLIENT_ERRORS, PulseError, pulse_error_to_http
from coinpulse.services.ingestion import RequestMeta
from coinpulse.services.stats import EventFilters

logger = logging.getLogger(__name__)


def raise_http(exc: PulseError) -> NoReturn:
    """Caller mistakes are answered quietly; everything else is logged for reconciliation."""
    if isinstance(exc, CLIENT_ERRORS):
        logger.debug("Rejected request: %s", exc)
    else:
        logger.warning("Request failed: %s %s", exc.code, exc)
    raise pulse_error_to_http(exc) from exc


def event_filters(
    machine: str | None = Query(None, description="Machine id or code"),
    region: str | None = Query(None),
    city: str | None = Query(None),
    start: date | None = Query(None, description="First business date (inclusive)"),
    end: date | None = Query(None, description="Last business date (inclusive)"),
) -> EventFilters:
    try:
        return EventFilters.from_machine_param(
            machine,
            region=(region or "").strip() or None,
            city=(city or "").strip() or None,
            start_date=start,
            end_date=end,
        )
    except PulseError as e:
        raise_http(e)


def request_meta(request: Request) -> RequestMeta:
    forwarded = request.headers.get("x-forwarded-for", "")
    origin_ip = forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
    return RequestMeta(origin_ip=origin_ip, client_id=request.headers.get("user-agent"))
