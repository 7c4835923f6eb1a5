#!/usr/bin/env python3
"""
Quick checks so the backend can start. Run from backend/:
  python scripts/check_backend.py
"""
import os
import sys
from pathlib import Path

# Run from backend/
backend_dir = Path(__file__).resolve().parent.parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))


def main():
    errors = []

    # 1) .env
    env_file = backend_dir / ".env"
    if not env_file.exists():
        errors.append("backend/.env missing. Copy backend/.env.example and set DATABASE_URL, BUSINESS_TIMEZONE.")
    else:
        print("OK  .env exists")

    # 2) Settings (time zone and limits are validated on load)
    try:
        from coinpulse.config import settings
        print(f"OK  Settings (business time zone {settings.business_timezone})")
    except Exception as e:
        errors.append(f"Settings: {e}")
        print("FAIL Settings:", e)
        return 1

    # 3) DB connection and tables
    try:
        from sqlalchemy import inspect, text
        from coinpulse.db.session import engine
        from coinpulse.db.tables import ALL_TABLE_NAMES
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("OK  Database connection (DATABASE_URL)")
        missing = sorted(set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names()))
        if missing:
            errors.append(f"Missing tables {missing}. Run: alembic upgrade head")
            print("FAIL Missing tables:", ", ".join(missing))
        else:
            print("OK  All tables present")
    except Exception as e:
        errors.append(f"Database: {e}")
        print("FAIL Database:", e)

    # 4) Machine directory
    if settings.machine_directory_url:
        print(f"OK  Machines resolved from registry {settings.machine_directory_url}")
    else:
        print("OK  Machines resolved from the local machines table")

    # 5) App import (catches missing deps, bad imports)
    try:
        from coinpulse.main import app  # noqa: F401
        print("OK  App import (coinpulse.main)")
    except Exception as e:
        errors.append(f"App import: {e}")
        print("FAIL App import:", e)

    if errors:
        print("\n---")
        for e in errors:
            print("•", e)
        return 1

    print("\nAll checks passed. Start with: uvicorn coinpulse.main:app --reload --port 8000")
    return 0


if __name__ == "__main__":
    sys.exit(main())
