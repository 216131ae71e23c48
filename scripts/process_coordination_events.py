#!/usr/bin/env python3
"""Process unprocessed coordination events locally.

Usage:
    python scripts/process_coordination_events.py
    python scripts/process_coordination_events.py --project-id <id> --verbose

Only events inside COORDINATION_EVENT_LOOKBACK_HOURS are picked up.
Exits 0 on success, 1 on failure.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.coordination.lifecycle import process_coordination_events
from app.coordination.store import SqlCoordinationStore
from app.db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Process pending coordination events")
    parser.add_argument("--project-id", default=None, help="Limit to one project")
    parser.add_argument("--verbose", action="store_true", help="Print diagnostics")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        result = process_coordination_events(
            SqlCoordinationStore(db),
            project_id=args.project_id,
            include_diagnostics=args.verbose,
        )
        print(
            f"status=completed "
            f"processed={result.processed_events} "
            f"created={result.created_triggers} "
            f"resolved={result.resolved_triggers}"
        )
        for entry in result.diagnostics or []:
            print(f"  [{entry.level}] {entry.message} event_id={entry.event_id}")
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
