import time
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from coinpulse.core.errors import ConflictError, MachineNotOperational, NotFound, ValidationError
from coinpulse.models.daily_rollup import DailyRollup
from coinpulse.models.hourly_rollup import HourlyRollup
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services import ingestion
from coinpulse.services.ingestion import (
    PulseInput,
    RequestMeta,
    get_event,
    parse_pulse_input,
    record_event,
    record_events,
    soft_delete_event,
)
from coinpulse.services.rollups import refresh_for_event, update

DAY = date(2024, 3, 15)


def _counters(db, machine_id):
    return db.query(MachineCounters).filter_by(machine_id=machine_id).one()


def _hourly(db, machine_id, hour):
    return db.query(HourlyRollup).filter_by(machine_id=machine_id, rollup_date=DAY, hour=hour).one()


def test_three_pulses_update_counters_and_rollups(db, machines, record):
    for at in ("2024-03-15T10:00:00", "2024-03-15T10:15:00", "2024-03-15T11:00:00"):
        outcome = record("M1", at)
        assert outcome.warning is None

    m1 = machines["M1"].id
    counters = _counters(db, m1)
    assert counters.total_events == 3
    assert counters.total_revenue == Decimal("1.50")

    daily = db.query(DailyRollup).filter_by(machine_id=m1, rollup_date=DAY).one()
    assert daily.event_count == 3
    assert daily.total_revenue == Decimal("1.50")
    assert daily.peak_hour == 10

    assert (_hourly(db, m1, 10).event_count, _hourly(db, m1, 10).revenue) == (2, Decimal("1.00"))
    assert (_hourly(db, m1, 11).event_count, _hourly(db, m1, 11).revenue) == (1, Decimal("0.50"))


def test_event_copies_machine_context(db, machines, record):
    outcome = record("m1", "2024-03-15T14:32:00", sequence_number=7)
    event = outcome.event
    assert event.machine_code == "M1"
    assert event.value == Decimal("0.50")
    assert event.currency == "EUR"
    assert (event.region, event.city, event.address) == ("Madrid", "Madrid", "Gran Via 1")
    assert (event.day_of_week, event.quarter, event.hour, event.minute) == (5, 1, 14, 32)
    assert event.sequence_number == 7
    assert event.processed is True
    assert event.processing_ms is not None


def test_explicit_value_and_game_fields(db, machines, record):
    record("M1", "2024-03-15T09:00:00", value="2.00", game_type="pairs", players_count=2, duration_seconds=120)
    record("M1", "2024-03-15T09:30:00", value="1.00", game_type="individual", players_count=1, duration_seconds=60)

    m1 = machines["M1"].id
    counters = _counters(db, m1)
    assert counters.total_revenue == Decimal("3.00")
    assert counters.total_play_time_seconds == 180

    daily = db.query(DailyRollup).filter_by(machine_id=m1, rollup_date=DAY).one()
    assert daily.average_players == 1.5
    assert daily.average_duration_seconds == 90.0
    assert daily.total_play_time_seconds == 180


def test_machine_meta_is_stored(db, machines, directory):
    data = PulseInput(machine_id=machines["M2"].id, occurred_at=datetime(2024, 3, 15, 12))
    outcome = record_event(db, directory, data, RequestMeta(origin_ip="10.0.0.9", client_id="kiosk/1.2"))
    assert outcome.event.origin_ip == "10.0.0.9"
    assert outcome.event.client_id == "kiosk/1.2"
    assert outcome.event.value == Decimal("1.00")


def test_occurred_at_defaults_to_now(db, machines, directory):
    now = datetime(2024, 5, 1, 18, 45, tzinfo=timezone.utc)
    outcome = record_event(db, directory, PulseInput(machine_code="M1"), now=now)
    assert outcome.event.event_date == date(2024, 5, 1)
    assert outcome.event.hour == 18


def test_not_operational_machine_writes_nothing(db, machines, record):
    with pytest.raises(MachineNotOperational):
        record("MNT", "2024-03-15T10:00:00")
    assert db.query(PulseEvent).count() == 0
    assert db.query(MachineCounters).count() == 0


def test_unknown_and_deactivated_machines_not_found(db, machines, record):
    with pytest.raises(NotFound):
        record("NOPE", "2024-03-15T10:00:00")
    with pytest.raises(NotFound):
        record("OFF", "2024-03-15T10:00:00")
    assert db.query(PulseEvent).count() == 0


def test_machine_without_positive_pulse_value(db, machines, directory):
    machines["M2"].pulse_value = Decimal("0.00")
    db.commit()
    with pytest.raises(ValidationError):
        record_event(db, directory, PulseInput(machine_code="M2", occurred_at=datetime(2024, 3, 15, 10)))
    assert db.query(PulseEvent).count() == 0

    outcome = record_event(
        db, directory, PulseInput(machine_code="M2", occurred_at=datetime(2024, 3, 15, 10), value="2.00")
    )
    assert outcome.event.value == Decimal("2.00")


def test_future_event_rejected(db, machines, directory):
    now = datetime(2024, 3, 15, 10, tzinfo=timezone.utc)
    data = PulseInput(machine_code="M1", occurred_at=now + timedelta(minutes=10))
    with pytest.raises(ValidationError):
        record_event(db, directory, data, now=now)
    assert db.query(PulseEvent).count() == 0


def test_small_clock_skew_accepted(db, machines, directory):
    now = datetime(2024, 3, 15, 10, tzinfo=timezone.utc)
    data = PulseInput(machine_code="M1", occurred_at=now + timedelta(minutes=2))
    assert record_event(db, directory, data, now=now).warning is None


@pytest.mark.parametrize("payload", [
    {},
    {"machineCode": "M1", "value": 0},
    {"machineCode": "M1", "value": "-1"},
    {"machineCode": "M1", "playersCount": 0},
    {"machineCode": "M1", "durationSeconds": -5},
    {"machineCode": "M1", "sequenceNumber": 0},
    {"machineCode": "M1", "gameType": "solitaire"},
    {"machineCode": "M1", "occurredAt": "yesterday"},
])
def test_malformed_input_rejected(payload):
    with pytest.raises(ValidationError) as exc:
        parse_pulse_input(payload)
    assert exc.value.details["problems"]


def test_camel_and_snake_case_accepted():
    a = parse_pulse_input({"machineCode": "M1", "sequenceNumber": 3})
    b = parse_pulse_input({"machine_code": "M1", "sequence_number": 3})
    assert a == b


def test_batch_middle_failure_does_not_abort(db, machines, directory):
    items = [
        {"machineCode": "M1", "occurredAt": "2024-03-15T10:00:00"},
        {"machineCode": "GHOST", "occurredAt": "2024-03-15T10:05:00"},
        {"machineCode": "M2", "occurredAt": "2024-03-15T10:10:00"},
    ]
    outcome = record_events(db, directory, items)

    assert [r.ok for r in outcome.results] == [True, False, True]
    assert outcome.results[1].error == "not_found"
    assert outcome.to_dict()["summary"] == {"total": 3, "succeeded": 2, "failed": 1}
    assert _counters(db, machines["M1"].id).total_events == 1
    assert _counters(db, machines["M2"].id).total_events == 1


def test_batch_reports_malformed_items(db, machines, directory):
    outcome = record_events(db, directory, [{"machineCode": "M1", "value": -3}, "not an object"])
    assert [r.error for r in outcome.results] == ["validation_error", "validation_error"]
    assert db.query(PulseEvent).count() == 0


def test_batch_size_limit(db, machines, directory, monkeypatch):
    monkeypatch.setattr(ingestion.settings, "batch_max_items", 2)
    with pytest.raises(ValidationError):
        record_events(db, directory, [{"machineCode": "M1"}] * 3)


def test_processing_ms_covers_rollup_refresh(db, machines, record, monkeypatch):
    real = update.apply_rollups_for_event

    def slow(db, event):
        time.sleep(0.05)
        return real(db, event)

    monkeypatch.setattr(update, "apply_rollups_for_event", slow)
    outcome = record("M1", "2024-03-15T10:00:00")
    assert outcome.warning is None
    assert db.get(PulseEvent, outcome.event.id).processing_ms >= 50


def test_rollup_failure_keeps_event_unprocessed(db, machines, record, monkeypatch):
    def fail(*args, **kwargs):
        raise ConflictError("Concurrent update to machine counters/rollups")

    monkeypatch.setattr(ingestion, "refresh_for_event", fail)
    outcome = record("M1", "2024-03-15T10:00:00")

    assert outcome.warning is not None
    assert outcome.warning.code == "partial_processing"
    assert outcome.counters is None
    event = db.get(PulseEvent, outcome.event.id)
    assert event.processed is False
    assert db.query(MachineCounters).count() == 0
    assert db.query(DailyRollup).count() == 0
    assert db.query(HourlyRollup).count() == 0

    monkeypatch.undo()
    refresh_for_event(db, event.id, retries=1)
    db.refresh(event)
    assert event.processed is True
    assert _counters(db, machines["M1"].id).total_events == 1


def test_refresh_twice_does_not_double_count(db, machines, record):
    outcome = record("M1", "2024-03-15T10:00:00")
    record("M1", "2024-03-15T10:20:00")
    refresh_for_event(db, outcome.event.id, retries=1)
    refresh_for_event(db, outcome.event.id, retries=1)

    m1 = machines["M1"].id
    assert _counters(db, m1).total_events == 2
    assert db.query(DailyRollup).filter_by(machine_id=m1).one().event_count == 2
    assert _hourly(db, m1, 10).event_count == 2


def test_soft_delete_corrects_counters_and_rollups(db, machines, record):
    first = record("M1", "2024-03-15T10:00:00")
    record("M1", "2024-03-15T11:00:00")
    record("M1", "2024-03-15T11:30:00")

    outcome = soft_delete_event(db, first.event.id)
    assert outcome.warning is None

    m1 = machines["M1"].id
    counters = _counters(db, m1)
    assert counters.total_events == 2
    assert counters.total_revenue == Decimal("1.00")
    daily = db.query(DailyRollup).filter_by(machine_id=m1, rollup_date=DAY).one()
    assert daily.event_count == 2
    assert daily.peak_hour == 11
    assert db.query(HourlyRollup).filter_by(machine_id=m1, hour=10).count() == 0

    with pytest.raises(NotFound):
        get_event(db, first.event.id)


def test_soft_delete_is_idempotent(db, machines, record):
    event_id = record("M1", "2024-03-15T10:00:00").event.id
    soft_delete_event(db, event_id)
    again = soft_delete_event(db, event_id)
    assert again.warning is None
    assert _counters(db, machines["M1"].id).total_events == 0
    assert db.query(DailyRollup).count() == 0


def test_soft_delete_unknown_event(db, machines):
    with pytest.raises(NotFound):
        soft_delete_event(db, 999)
