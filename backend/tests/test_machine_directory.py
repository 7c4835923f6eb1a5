from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from coinpulse.core.errors import MachineLookupError, MachineNotOperational
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services import machines as machines_module
from coinpulse.services.ingestion import PulseInput, record_event
from coinpulse.services.machines import (
    DatabaseMachineDirectory,
    HttpMachineDirectory,
    ResolvedMachine,
    get_machine_directory,
)

REGISTRY = "http://registry.test"

REMOTE_MACHINE = {
    "id": 41,
    "code": "r-41",
    "status": "Active",
    "is_active": True,
    "location": {"region": "Jalisco", "city": "Guadalajara", "address": "Av. Juarez 10"},
    "pulse_value": "10.00",
    "currency": "mxn",
    "capacity": 5000,
}


def _directory(handler) -> HttpMachineDirectory:
    return HttpMachineDirectory(REGISTRY, timeout=0.5, transport=httpx.MockTransport(handler))


def test_database_directory_by_id_and_code(db, machines):
    directory = DatabaseMachineDirectory(db)
    by_id = directory.resolve(machine_id=machines["M1"].id)
    by_code = directory.resolve(machine_code=" m1 ")
    assert by_id == by_code
    assert by_id.operational
    assert by_id.default_value == Decimal("0.50")
    assert by_id.location.city == "Madrid"
    assert directory.resolve(machine_code="NOPE") is None
    assert directory.resolve() is None


def test_database_directory_flags(db, machines):
    directory = DatabaseMachineDirectory(db)
    assert not directory.resolve(machine_code="MNT").operational
    off = directory.resolve(machine_code="OFF")
    assert off.is_active is False
    assert not off.operational


def test_http_directory_by_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=REMOTE_MACHINE)

    machine = _directory(handler).resolve(machine_id=41)
    assert seen == ["/machines/41"]
    assert isinstance(machine, ResolvedMachine)
    assert machine.code == "R-41"
    assert machine.status == "active"
    assert machine.currency == "MXN"
    assert machine.default_value == Decimal("10.00")
    assert machine.capacity == Decimal("5000")


def test_http_directory_by_code():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=REMOTE_MACHINE)

    _directory(handler).resolve(machine_code="r-41")
    assert seen == ["/machines/by-code/R-41"]


def test_http_directory_404_is_unknown_machine():
    assert _directory(lambda r: httpx.Response(404)).resolve(machine_id=1) is None


@pytest.mark.parametrize("handler", [
    lambda r: httpx.Response(503, text="down"),
    lambda r: httpx.Response(200, text="<html>"),
    lambda r: httpx.Response(200, json={"code": "NO-ID"}),
    lambda r: httpx.Response(200, json=dict(REMOTE_MACHINE, pulse_value="0")),
    lambda r: httpx.Response(200, json=dict(REMOTE_MACHINE, pulse_value="-2.50")),
])
def test_http_directory_bad_answers(handler):
    with pytest.raises(MachineLookupError):
        _directory(handler).resolve(machine_id=1)


def test_http_directory_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow registry", request=request)

    with pytest.raises(MachineLookupError) as exc:
        _directory(handler).resolve(machine_id=1)
    assert "timed out" in exc.value.message


def test_http_directory_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(MachineLookupError):
        _directory(handler).resolve(machine_code="M1")


def test_ingestion_with_remote_machine(db):
    """Machines from the registry need no local row; their context is still copied."""
    directory = _directory(lambda r: httpx.Response(200, json=REMOTE_MACHINE))
    outcome = record_event(db, directory, PulseInput(machine_id=41, occurred_at=datetime(2024, 3, 15, 9)))

    assert outcome.warning is None
    event = db.get(PulseEvent, outcome.event.id)
    assert (event.machine_id, event.machine_code, event.currency) == (41, "R-41", "MXN")
    assert event.value == Decimal("10.00")
    assert event.region == "Jalisco"


def test_remote_machine_in_maintenance(db):
    payload = dict(REMOTE_MACHINE, status="maintenance")
    directory = _directory(lambda r: httpx.Response(200, json=payload))
    with pytest.raises(MachineNotOperational):
        record_event(db, directory, PulseInput(machine_id=41))
    assert db.query(PulseEvent).count() == 0


def test_directory_choice_follows_settings(db, monkeypatch):
    assert isinstance(get_machine_directory(db), DatabaseMachineDirectory)
    monkeypatch.setattr(machines_module.settings, "machine_directory_url", REGISTRY)
    directory = get_machine_directory(db)
    assert isinstance(directory, HttpMachineDirectory)
    assert directory.base_url == REGISTRY
