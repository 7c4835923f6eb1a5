"""
Centralized error handling for ingestion and stats failures.
Domain exceptions plus a rules table so routes stay thin and new error types are easy to add.
"""
from __future__ import annotations

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------


class PulseError(Exception):
    """Base class for per-request errors. None of these is fatal to the process."""

    code = "pulse_error"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(PulseError):
    """Missing or malformed input. Rejected before any write."""

    code = "validation_error"


class NotFound(PulseError):
    """Referenced machine or event does not exist (or the machine is deactivated)."""

    code = "not_found"


class MachineNotOperational(PulseError):
    """Machine exists but its status does not accept events (maintenance, broken, inactive)."""

    code = "machine_not_operational"


class PartialProcessingError(PulseError):
    """Event row is durable but counter/rollup refresh failed; event keeps processed=false."""

    code = "partial_processing"


class ConflictError(PulseError):
    """Concurrent update to the same counter/rollup key; raised after bounded retries."""

    code = "conflict"


class MachineLookupError(PulseError):
    """Machine directory timed out or is unreachable."""

    code = "machine_lookup_failed"


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code). First match wins.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_FORBIDDEN = 403
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_INTERNAL_ERROR = 500
STATUS_GATEWAY_TIMEOUT = 504

PULSE_ERROR_RULES: list[tuple[type[PulseError], int]] = [
    (ValidationError, STATUS_BAD_REQUEST),
    (NotFound, STATUS_NOT_FOUND),
    (MachineNotOperational, STATUS_FORBIDDEN),
    (ConflictError, STATUS_CONFLICT),
    (MachineLookupError, STATUS_GATEWAY_TIMEOUT),
]

# Caller mistakes: not logged as system errors
CLIENT_ERRORS = (ValidationError, NotFound, MachineNotOperational)


def pulse_error_to_http(exc: PulseError) -> HTTPException:
    """
    Map a domain error into an HTTPException.
    Uses PULSE_ERROR_RULES for known error types; otherwise 500 with the error payload.
    """
    for error_type, status_code in PULSE_ERROR_RULES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=exc.to_dict())
