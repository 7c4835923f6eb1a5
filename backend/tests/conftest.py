"""Shared fixtures: in-memory SQLite, seeded machines, API client with get_db overridden."""
import os

# Must be set before coinpulse.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BUSINESS_TIMEZONE"] = "UTC"
os.environ["MACHINE_DIRECTORY_URL"] = ""

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import coinpulse.models  # noqa: F401
from coinpulse.db.base import Base
from coinpulse.db.session import SessionLocal, engine, get_db
from coinpulse.main import app
from coinpulse.models.machine import Machine
from coinpulse.services.ingestion import PulseInput, record_event
from coinpulse.services.machines import DatabaseMachineDirectory


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def machines(db):
    """M1 (0.50 EUR, Madrid), M2 (1.00 EUR, Barcelona), MNT in maintenance, OFF deactivated."""
    rows = [
        Machine(code="M1", name="Arcade 1", status="active", is_active=True, region="Madrid",
                city="Madrid", address="Gran Via 1", pulse_value=Decimal("0.50"), currency="EUR",
                capacity=Decimal("100.00")),
        Machine(code="M2", name="Arcade 2", status="active", is_active=True, region="Catalonia",
                city="Barcelona", address="Rambla 2", pulse_value=Decimal("1.00"), currency="EUR"),
        Machine(code="MNT", name="Broken claw", status="maintenance", is_active=True, region="Madrid",
                city="Madrid", address="Sol 3", pulse_value=Decimal("0.50"), currency="EUR"),
        Machine(code="OFF", name="Retired", status="active", is_active=False, region="Madrid",
                city="Alcala", address="Mayor 4", pulse_value=Decimal("0.50"), currency="EUR"),
    ]
    db.add_all(rows)
    db.commit()
    return {m.code: m for m in rows}


@pytest.fixture
def directory(db):
    return DatabaseMachineDirectory(db)


@pytest.fixture
def record(db, directory):
    """record("M1", "2024-03-15T10:00:00", value="0.50", ...) -> RecordOutcome"""
    def _record(code: str, occurred_at: str, **fields):
        data = PulseInput(machine_code=code, occurred_at=datetime.fromisoformat(occurred_at), **fields)
        return record_event(db, directory, data)
    return _record


@pytest.fixture
def client(machines):
    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
