import threading
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from coinpulse.core.errors import ConflictError
from coinpulse.db.base import Base
from coinpulse.db.session import make_engine
from coinpulse.models.machine import Machine
from coinpulse.models.daily_rollup import DailyRollup
from coinpulse.models.hourly_rollup import HourlyRollup
from coinpulse.models.machine_counters import MachineCounters
from coinpulse.models.pulse_event import PulseEvent
from coinpulse.services.ingestion import PulseInput, record_event
from coinpulse.services.machines import DatabaseMachineDirectory
from coinpulse.services.rollups import (
    KeyedLocks,
    find_drift,
    money,
    peak_hour_for_day,
    refresh_daily_rollup,
    refresh_for_event,
    refresh_hourly_rollup,
    unprocessed_event_ids,
    update,
)

DAY = date(2024, 3, 15)


def test_money_normalises_sums():
    assert money(None) == Decimal("0.00")
    assert money(1.5) == Decimal("1.50")
    assert str(money(Decimal("0.1") + Decimal("0.2"))) == "0.30"


def test_one_row_per_key(db, machines, record):
    for minute in (0, 10, 20, 30):
        record("M1", f"2024-03-15T10:{minute:02d}:00")
    m1 = machines["M1"].id
    assert db.query(DailyRollup).filter_by(machine_id=m1, rollup_date=DAY).count() == 1
    assert db.query(HourlyRollup).filter_by(machine_id=m1, rollup_date=DAY, hour=10).count() == 1
    assert db.query(MachineCounters).filter_by(machine_id=m1).count() == 1


def test_direct_refresh_is_idempotent(db, machines, record):
    record("M1", "2024-03-15T10:00:00")
    record("M1", "2024-03-15T12:00:00")
    m1 = machines["M1"].id
    before = db.query(DailyRollup).filter_by(machine_id=m1).one()
    snapshot = (before.event_count, before.total_revenue, before.peak_hour)

    for _ in range(3):
        refresh_daily_rollup(db, m1, DAY)
        refresh_hourly_rollup(db, m1, DAY, 10)
    db.commit()
    db.expire_all()

    after = db.query(DailyRollup).filter_by(machine_id=m1).one()
    assert (after.event_count, after.total_revenue, after.peak_hour) == snapshot
    assert db.query(HourlyRollup).filter_by(machine_id=m1, hour=10).one().event_count == 1


def test_peak_hour_ties_go_to_earliest(db, machines, record):
    for at in ("2024-03-15T15:00:00", "2024-03-15T15:30:00", "2024-03-15T09:00:00", "2024-03-15T09:45:00"):
        record("M1", at)
    assert peak_hour_for_day(db, machines["M1"].id, DAY) == 9


def test_peak_hour_empty_day(db, machines):
    assert peak_hour_for_day(db, machines["M1"].id, DAY) is None


def test_days_and_machines_are_separate(db, machines, record):
    record("M1", "2024-03-15T10:00:00")
    record("M1", "2024-03-16T10:00:00")
    record("M2", "2024-03-15T10:00:00")
    assert db.query(DailyRollup).count() == 3
    assert db.query(HourlyRollup).count() == 3
    assert db.query(MachineCounters).count() == 2


def test_conflicts_retry_then_raise(db, machines, record, monkeypatch):
    event_id = record("M1", "2024-03-15T10:00:00").event.id
    calls = []

    def conflicting(db, event):
        calls.append(event.id)
        raise StaleDataError("version mismatch")

    monkeypatch.setattr(update, "apply_rollups_for_event", conflicting)
    with pytest.raises(ConflictError) as exc:
        refresh_for_event(db, event_id, retries=3)
    assert len(calls) == 3
    assert exc.value.details["attempts"] == 3


def test_conflict_then_success(db, machines, record, monkeypatch):
    event_id = record("M1", "2024-03-15T10:00:00").event.id
    real = update.apply_rollups_for_event
    attempts = []

    def flaky(db, event):
        attempts.append(1)
        if len(attempts) == 1:
            raise StaleDataError("version mismatch")
        return real(db, event)

    monkeypatch.setattr(update, "apply_rollups_for_event", flaky)
    counters = refresh_for_event(db, event_id, retries=3)
    assert len(attempts) == 2
    assert counters.total_events == 1
    assert db.get(PulseEvent, event_id).processed is True


def test_keyed_lock_times_out_and_cleans_up():
    locks = KeyedLocks()
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("m1"):
            held.set()
            release.wait(5)

    t = threading.Thread(target=holder)
    t.start()
    held.wait(5)
    with pytest.raises(ConflictError):
        with locks.hold("m1", timeout=0.05):
            pass
    # Other keys are independent
    with locks.hold("m2", timeout=0.05):
        pass
    release.set()
    t.join(5)
    assert len(locks) == 0


def test_drift_report_clean_after_ingestion(db, machines, record):
    record("M1", "2024-03-15T10:00:00")
    record("M2", "2024-03-15T11:00:00")
    assert find_drift(db) == []
    assert unprocessed_event_ids(db) == []


def test_drift_report_finds_stale_rows(db, machines, record):
    record("M1", "2024-03-15T10:00:00")
    row = db.query(HourlyRollup).one()
    row.event_count = 5
    db.commit()

    drift = find_drift(db)
    assert len(drift) == 1
    assert drift[0]["table"] == "hourly_rollups"
    assert drift[0]["expected"]["event_count"] == 1
    assert drift[0]["actual"]["event_count"] == 5


@pytest.fixture
def file_sessions(tmp_path):
    """Sessions on a file-backed SQLite database (pooled, one connection per thread) with M1 seeded."""
    engine = make_engine(f"sqlite:///{tmp_path / 'pulses.db'}")
    assert not isinstance(engine.pool, StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with factory() as s:
        s.add(Machine(code="M1", name="Arcade 1", status="active", is_active=True, region="Madrid",
                      city="Madrid", address="Gran Via 1", pulse_value=Decimal("0.50"), currency="EUR"))
        s.commit()
    yield factory
    engine.dispose()


def test_concurrent_writers_same_machine(file_sessions):
    """Writers on separate sessions and threads never lose or double count an event."""
    writers, per_writer = 6, 5
    start = threading.Barrier(writers)
    errors = []
    warnings = []

    def writer(n):
        session = file_sessions()
        try:
            directory = DatabaseMachineDirectory(session)
            start.wait(10)
            for i in range(per_writer):
                data = PulseInput(
                    machine_code="M1",
                    occurred_at=datetime(2024, 3, 15, 10, n * per_writer + i),
                    value=f"{n + 1}.25",
                )
                outcome = record_event(session, directory, data)
                if outcome.warning is not None:
                    warnings.append(outcome.warning)
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(60)

    assert errors == []
    assert warnings == []
    total = writers * per_writer
    revenue = sum(Decimal(f"{n + 1}.25") for n in range(writers)) * per_writer

    with file_sessions() as s:
        assert s.query(PulseEvent).count() == total
        assert s.query(PulseEvent).filter(PulseEvent.processed.is_(False)).count() == 0
        counters = s.query(MachineCounters).one()
        assert counters.total_events == total
        assert counters.total_revenue == revenue
        daily = s.query(DailyRollup).one()
        assert (daily.rollup_date, daily.event_count, daily.total_revenue) == (DAY, total, revenue)
        hourly = s.query(HourlyRollup).one()
        assert (hourly.hour, hourly.event_count, hourly.revenue) == (10, total, revenue)
        assert find_drift(s) == []
