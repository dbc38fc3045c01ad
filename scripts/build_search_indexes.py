"""Build the pg_trgm GIN indexes on every ``searchable_text`` column.

Indexes are built with ``CREATE INDEX CONCURRENTLY`` by default so the tables
stay writable while the index is built.
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.append(str(Path(__file__).resolve().parents[1]))

load_dotenv()

from database import create_standalone_connection, ensure_search_indexes

LOGGER = logging.getLogger("build_search_indexes")


def _make_arg_parser():
    parser = argparse.ArgumentParser(description="Build trigram indexes for text search.")
    parser.add_argument(
        "--blocking",
        action="store_true",
        help="Build without CONCURRENTLY (takes a write lock; for empty or dev databases).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR).")
    return parser


def main():
    args = _make_arg_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    conn = create_standalone_connection()
    try:
        built = ensure_search_indexes(conn, concurrently=not args.blocking)
    finally:
        conn.close()

    LOGGER.info("Search indexes ready: %s", ", ".join(built))
    return 0


if __name__ == "__main__":
    sys.exit(main())
