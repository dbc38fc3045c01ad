"""Populate ``searchable_text`` for customers, locations and tasks.

Only rows with an unset ``searchable_text`` are touched unless ``--force`` is
given, so the script can be re-run at any time.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.append(str(Path(__file__).resolve().parents[1]))

load_dotenv()

import config
from database import create_standalone_connection
from services.backfill_service import SearchTextBackfill, parse_entities

LOGGER = logging.getLogger("backfill_searchable_text")


def _setup_logging(level: str) -> None:
    numeric = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _make_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backfill normalized searchable_text columns.")
    parser.add_argument(
        "--entities",
        default="customer,location,task",
        help="Comma-separated subset of: customer, location, task.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Recompute every row, not only rows with an unset searchable_text.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=config.BACKFILL_BATCH_SIZE,
        help="Rows per commit.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Compute and summarize only; do not write to DB.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR).")
    return parser


def run(args: argparse.Namespace, conn) -> int:
    entities = parse_entities(args.entities)
    backfill = SearchTextBackfill(
        conn,
        force=args.force,
        batch_size=args.batch_size,
        dry_run=args.dry_run,
    )
    results = backfill.run(entities)

    failed = 0
    for stats in results.values():
        LOGGER.info(
            "Summary entity=%s scanned=%s updated=%s skipped=%s failed=%s",
            stats.entity,
            stats.scanned,
            stats.updated,
            stats.skipped,
            stats.failed,
        )
        failed += stats.failed

    if failed:
        LOGGER.warning("%s record(s) could not be backfilled and stay out of search results", failed)
        return 1
    return 0


def main() -> int:
    parser = _make_arg_parser()
    args = parser.parse_args()
    _setup_logging(args.log_level)

    try:
        parse_entities(args.entities)
    except ValueError as exc:
        parser.error(str(exc))

    conn = create_standalone_connection()
    try:
        return run(args, conn)
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
