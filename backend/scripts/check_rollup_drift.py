#!/usr/bin/env python3
"""Report counters/rollups that disagree with pulse_events, and events still processed=false.
Read-only: nothing is repaired.
Run from backend: python scripts/check_rollup_drift.py [--json]
"""
import json
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from coinpulse.db.session import SessionLocal
from coinpulse.services.rollups import find_drift, unprocessed_event_ids


def main():
    db = SessionLocal()
    try:
        drift = find_drift(db)
        pending = unprocessed_event_ids(db)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    if "--json" in sys.argv[1:]:
        print(json.dumps({"drift": drift, "unprocessed_event_ids": pending}, indent=2))
    else:
        for d in drift:
            print(f"{d['table']} {'/'.join(d['key'])}: expected {d['expected']} actual {d['actual']}")
        print(f"{len(drift)} drifted key(s); {len(pending)} unprocessed event(s).")
        if pending:
            print("Unprocessed:", ", ".join(str(i) for i in pending[:50]))
    sys.exit(1 if drift or pending else 0)


if __name__ == "__main__":
    main()
