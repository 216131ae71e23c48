#!/usr/bin/env python3
"""Run the scheduled coordination sweep locally.

Usage:
    python scripts/run_coordination_sweep.py
    python scripts/run_coordination_sweep.py --project-id <id>

Ages every PENDING/SENT trigger and escalates the ones past their next level.
Exits 0 on success, 1 on failure.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.coordination.lifecycle import run_scheduled_coordination_sweep
from app.coordination.store import SqlCoordinationStore
from app.db.session import SessionLocal


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the coordination escalation sweep")
    parser.add_argument("--project-id", default=None, help="Limit to one project")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        result = run_scheduled_coordination_sweep(
            SqlCoordinationStore(db), project_id=args.project_id
        )
        print(
            f"status=completed "
            f"aged={result.processed_events} "
            f"created={result.created_triggers} "
            f"resolved={result.resolved_triggers} "
            f"suppressed={result.suppressed_drafts}"
        )
        for entry in result.diagnostics or []:
            print(f"  [{entry.level}] {entry.message} dedup_key={entry.dedup_key}")
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
