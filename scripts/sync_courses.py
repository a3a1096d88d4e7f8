"""
Catalog sync job: fetch the current term's course catalog and upsert it.

Intended for a scheduler (cron, CI schedule). Exit code 0 on success, 1 on
any failure. Rows from earlier terms are archived, never deleted.

Usage:
    python scripts/sync_courses.py
    python scripts/sync_courses.py --term 1269
    python scripts/sync_courses.py --snapshot data/courses.json --dry-run
    python scripts/sync_courses.py --from-snapshot data/courses.json
"""

import argparse
import os
import sys

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")
sys.path.insert(0, BACKEND_DIR)

import config  # noqa: E402
from catalog_sync import CatalogSyncError, fetch_catalog, run_catalog_sync  # noqa: E402
from data_loader import load_catalog_snapshot, load_program_plan, write_catalog_snapshot  # noqa: E402
from db import make_session_factory  # noqa: E402
from terms import term_code_for_date, term_label  # noqa: E402


def main(args=None) -> int:
    parser = argparse.ArgumentParser(description="Sync the course catalog into the planner database.")
    parser.add_argument("--term", type=str, help="Term code to sync (default: current term, e.g. 1269).")
    parser.add_argument("--plan", type=str, default=config.PROGRAM_PLAN_PATH, help="Program plan JSON used for tagging.")
    parser.add_argument("--database-url", type=str, default=config.DATABASE_URL, help="SQLAlchemy database URL.")
    parser.add_argument("--from-snapshot", type=str, help="Sync from a saved catalog JSON instead of the API.")
    parser.add_argument("--snapshot", type=str, help="Also write the fetched raw catalog to this JSON file.")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and normalize without writing to the database.")
    opts = parser.parse_args(args)

    term_code = opts.term or term_code_for_date()
    try:
        term_label(term_code)
    except ValueError as exc:
        print(f"[FATAL] {exc}", file=sys.stderr)
        return 1

    try:
        plan = load_program_plan(
            opts.plan,
            fallback_name=config.DEFAULT_PROGRAM_NAME,
            fallback_subjects=config.DEFAULT_RELEVANT_SUBJECTS,
        )
    except (OSError, ValueError) as exc:
        print(f"[FATAL] Cannot load program plan {opts.plan}: {exc}", file=sys.stderr)
        return 1

    try:
        if opts.from_snapshot:
            records = load_catalog_snapshot(opts.from_snapshot)
            print(f"[INFO] Loaded {len(records)} catalog record(s) from {opts.from_snapshot}")
        else:
            records = fetch_catalog(term_code, config.catalog_api_key())
            print(f"[INFO] Fetched {len(records)} catalog record(s) for term {term_code}")
        if opts.snapshot:
            write_catalog_snapshot(records, opts.snapshot)
            print(f"[OK] Wrote snapshot: {opts.snapshot}")

        session_factory = None if opts.dry_run else make_session_factory(opts.database_url)
        summary = run_catalog_sync(
            session_factory,
            plan,
            term_code=term_code,
            records=records,
            dry_run=opts.dry_run,
        )
    except CatalogSyncError as exc:
        print(f"[FATAL] Catalog sync failed: {exc.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        print(f"[FATAL] Catalog sync failed: {exc}", file=sys.stderr)
        return 1

    print(
        f"[DONE] term={summary['term_code']} fetched={summary['fetched']} "
        f"upserted={summary['upserted']} skipped={summary['skipped']} archived={summary['archived']}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
