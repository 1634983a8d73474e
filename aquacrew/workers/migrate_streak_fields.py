"""
Initialize streak fields on onboarded profiles that predate them.

Dry-run by default. Use --live to apply updates. Safe to run repeatedly:
profiles that already carry ``currentStreak`` are skipped.
"""
from __future__ import annotations

import argparse
import os
from typing import Dict, Optional

from aquacrew.core.documents import DocumentStore
from aquacrew.core.logging import log_event

STREAK_DEFAULTS = {
    "currentStreak": 0,
    "longestStreak": 0,
    "lastGoalAchievedDate": "",
    "unviewedMilestones": [],
}


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def migrate_streak_fields(store: DocumentStore, *, dry_run: bool) -> Dict:
    report = {"scanned": 0, "migrated": 0, "skipped": 0, "dry_run": dry_run}

    updates = {}
    for snapshot in store.query("users", "onboardingComplete", True):
        report["scanned"] += 1
        if "currentStreak" in snapshot.data:
            report["skipped"] += 1
            continue
        updates[snapshot.path] = dict(STREAK_DEFAULTS)
        report["migrated"] += 1

    if updates and not dry_run:
        store.batch_update(updates)

    log_event("info", "migration.streak_fields", event_type="migration", extra=report)
    return report


def main() -> int:
    from aquacrew.core.config import settings
    from aquacrew.core.container import build_document_store

    parser = argparse.ArgumentParser(description="Add streak fields to onboarded profiles.")
    parser.add_argument("--live", dest="dry_run", action="store_false", help="Apply updates to profiles.")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Run without writes.")
    parser.set_defaults(dry_run=_parse_bool(os.getenv("AQUACREW_MIGRATION_DRY_RUN", "1"), True))
    args = parser.parse_args()

    report = migrate_streak_fields(build_document_store(settings), dry_run=args.dry_run)
    print(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
