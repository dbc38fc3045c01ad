"""Backfill of ``searchable_text`` for rows written before it existed.

By default only rows whose ``searchable_text`` is unset are touched, so the
backfill can be re-run safely. ``force`` recomputes every row. A row that
fails is logged and skipped; it stays out of search results until repaired,
and the rest of the batch carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List

from database import get_cursor
from services.search_index import (
    TASK_SEARCH_ROW_SQL,
    customer_searchable_text,
    location_searchable_text,
    task_searchable_text,
)

LOGGER = logging.getLogger(__name__)

ENTITY_CUSTOMER = "customer"
ENTITY_LOCATION = "location"
ENTITY_TASK = "task"
# Related rows first, so nothing depends on a row not yet processed.
ENTITY_ORDER = (ENTITY_CUSTOMER, ENTITY_LOCATION, ENTITY_TASK)

SAVEPOINT_NAME = "backfill_row"


@dataclass(frozen=True)
class BackfillEntity:
    name: str
    table: str
    select_sql: str
    alias: str
    build: Callable


ENTITIES: Dict[str, BackfillEntity] = {
    ENTITY_CUSTOMER: BackfillEntity(
        name=ENTITY_CUSTOMER,
        table="customers",
        select_sql="SELECT c.id, c.name, c.phone, c.searchable_text FROM customers c",
        alias="c",
        build=customer_searchable_text,
    ),
    ENTITY_LOCATION: BackfillEntity(
        name=ENTITY_LOCATION,
        table="geo_locations",
        select_sql="SELECT g.id, g.name, g.address, g.searchable_text FROM geo_locations g",
        alias="g",
        build=location_searchable_text,
    ),
    ENTITY_TASK: BackfillEntity(
        name=ENTITY_TASK,
        table="tasks",
        select_sql=TASK_SEARCH_ROW_SQL,
        alias="t",
        build=task_searchable_text,
    ),
}


@dataclass
class BackfillStats:
    entity: str
    scanned: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


def parse_entities(raw: str | None) -> List[str]:
    if not raw:
        return list(ENTITY_ORDER)
    requested = [token.strip() for token in raw.split(",") if token.strip()]
    for name in requested:
        if name not in ENTITIES:
            raise ValueError(f"Unsupported entity: {name!r}. Supported: {', '.join(ENTITY_ORDER)}")
    return [name for name in ENTITY_ORDER if name in requested] or list(ENTITY_ORDER)


class SearchTextBackfill:
    """Recompute ``searchable_text`` for customers, locations and tasks."""

    def __init__(self, conn, *, force: bool = False, batch_size: int = 500, dry_run: bool = False) -> None:
        self.conn = conn
        self.force = bool(force)
        self.batch_size = max(1, int(batch_size))
        self.dry_run = bool(dry_run)

    def _select_sql(self, entity: BackfillEntity) -> str:
        sql = entity.select_sql
        if not self.force:
            column = f"{entity.alias}.searchable_text"
            sql += f" WHERE ({column} IS NULL OR {column} = '')"
        return sql + f" ORDER BY {entity.alias}.id"

    def run(self, entities: Iterable[str] = ENTITY_ORDER) -> Dict[str, BackfillStats]:
        wanted = set(entities)
        results: Dict[str, BackfillStats] = {}
        for name in ENTITY_ORDER:
            if name in wanted:
                results[name] = self.run_entity(ENTITIES[name])
        return results

    def run_entity(self, entity: BackfillEntity) -> BackfillStats:
        stats = BackfillStats(entity=entity.name)
        cursor = get_cursor(self.conn)
        try:
            cursor.execute(self._select_sql(entity))
            rows = cursor.fetchall()
            LOGGER.info(
                "Backfilling %s searchable_text: candidates=%s force=%s dry_run=%s",
                entity.name,
                len(rows),
                self.force,
                self.dry_run,
            )

            pending = 0
            for row in rows:
                stats.scanned += 1
                if self._process_row(cursor, entity, row, stats):
                    pending += 1
                if pending >= self.batch_size:
                    self._commit()
                    pending = 0
            self._commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cursor.close()

        LOGGER.info(
            "Backfilled %s: scanned=%s updated=%s skipped=%s failed=%s",
            entity.name,
            stats.scanned,
            stats.updated,
            stats.skipped,
            stats.failed,
        )
        return stats

    def _process_row(self, cursor, entity: BackfillEntity, row, stats: BackfillStats) -> bool:
        """Write one row. Returns True when an UPDATE was issued."""
        record_id = row["id"]
        if not self.dry_run:
            cursor.execute(f"SAVEPOINT {SAVEPOINT_NAME}")
        try:
            text = entity.build(row)
            if text == row.get("searchable_text"):
                stats.skipped += 1
                if not self.dry_run:
                    cursor.execute(f"RELEASE SAVEPOINT {SAVEPOINT_NAME}")
                return False
            if not self.dry_run:
                cursor.execute(
                    f"UPDATE {entity.table} SET searchable_text = %s WHERE id = %s",
                    (text, record_id),
                )
                cursor.execute(f"RELEASE SAVEPOINT {SAVEPOINT_NAME}")
        except Exception:
            LOGGER.warning(
                "Skipping %s id=%s: searchable_text recompute failed",
                entity.name,
                record_id,
                exc_info=True,
            )
            stats.failed += 1
            if not self.dry_run:
                cursor.execute(f"ROLLBACK TO SAVEPOINT {SAVEPOINT_NAME}")
            return False
        stats.updated += 1
        return True

    def _commit(self) -> None:
        if self.dry_run:
            self.conn.rollback()
        else:
            self.conn.commit()
