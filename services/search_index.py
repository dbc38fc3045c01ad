"""Write-time maintenance of the ``searchable_text`` columns.

Each searchable table stores one normalized string built from its raw fields
in a fixed order. Tasks also embed their customer's and location's fields, so
renaming a customer or moving a location rewrites every dependent task. All
functions here run on the caller's cursor; the caller owns the transaction and
commits once, so ``searchable_text`` is never stale after a write.
"""

import logging

import psycopg2.extras

import config
from utils.record import read_field
from utils.text import build_searchable_text

LOGGER = logging.getLogger(__name__)

CUSTOMER_SEARCH_FIELDS = ("name", "phone")
LOCATION_SEARCH_FIELDS = ("name", "address")
TASK_SEARCH_FIELDS = (
    "id",
    "title",
    "description",
    "customer_name",
    "customer_phone",
    "location_name",
    "location_address",
)

EXECUTE_VALUES_PAGE_SIZE = 1000

TASK_SEARCH_ROW_SQL = """
    SELECT
        t.id,
        t.title,
        t.description,
        t.searchable_text,
        c.name AS customer_name,
        c.phone AS customer_phone,
        g.name AS location_name,
        g.address AS location_address
    FROM tasks t
    LEFT JOIN customers c ON c.id = t.customer_id
    LEFT JOIN geo_locations g ON g.id = t.geo_location_id
"""

BULK_UPDATE_TASKS_SQL = """
    UPDATE tasks AS t
    SET searchable_text = v.searchable_text
    FROM (VALUES %s) AS v(id, searchable_text)
    WHERE t.id = v.id
"""


def searchable_text_for(row, fields):
    """Join ``fields`` of ``row``; a row with all of them empty falls back to its id."""
    text = build_searchable_text(read_field(row, field) for field in fields)
    return text or build_searchable_text([read_field(row, "id")])


def customer_searchable_text(customer):
    return searchable_text_for(customer, CUSTOMER_SEARCH_FIELDS)


def location_searchable_text(location):
    return searchable_text_for(location, LOCATION_SEARCH_FIELDS)


def task_searchable_text(task, customer=None, location=None):
    """Build a task's search text from the task and its related rows.

    ``task`` may already carry the joined ``customer_*`` / ``location_*``
    columns; explicit ``customer`` / ``location`` rows take precedence.
    With no optional fields set the result is just the task id.
    """
    row = {
        "id": read_field(task, "id"),
        "title": read_field(task, "title"),
        "description": read_field(task, "description"),
        "customer_name": read_field(task, "customer_name"),
        "customer_phone": read_field(task, "customer_phone"),
        "location_name": read_field(task, "location_name"),
        "location_address": read_field(task, "location_address"),
    }
    if customer is not None:
        row["customer_name"] = read_field(customer, "name")
        row["customer_phone"] = read_field(customer, "phone")
    if location is not None:
        row["location_name"] = read_field(location, "name")
        row["location_address"] = read_field(location, "address")
    return searchable_text_for(row, TASK_SEARCH_FIELDS)


def refresh_customer_searchable_text(cursor, customer_id):
    cursor.execute("SELECT id, name, phone FROM customers WHERE id = %s", (customer_id,))
    row = cursor.fetchone()
    if row is None:
        return None
    text = customer_searchable_text(row)
    cursor.execute(
        "UPDATE customers SET searchable_text = %s WHERE id = %s",
        (text, customer_id),
    )
    return text


def refresh_location_searchable_text(cursor, location_id):
    cursor.execute("SELECT id, name, address FROM geo_locations WHERE id = %s", (location_id,))
    row = cursor.fetchone()
    if row is None:
        return None
    text = location_searchable_text(row)
    cursor.execute(
        "UPDATE geo_locations SET searchable_text = %s WHERE id = %s",
        (text, location_id),
    )
    return text


def refresh_task_searchable_text(cursor, task_id):
    """Recompute one task's ``searchable_text``. Returns ``None`` if it is gone."""
    cursor.execute(TASK_SEARCH_ROW_SQL + " WHERE t.id = %s", (task_id,))
    row = cursor.fetchone()
    if row is None:
        return None
    text = task_searchable_text(row)
    cursor.execute(
        "UPDATE tasks SET searchable_text = %s WHERE id = %s",
        (text, task_id),
    )
    return text


def _reindex_tasks_where(cursor, where_sql, params, *, owner):
    cursor.execute(
        TASK_SEARCH_ROW_SQL + " WHERE t.deleted_at IS NULL AND " + where_sql + " ORDER BY t.id",
        params,
    )
    rows = cursor.fetchall()
    if not rows:
        return 0

    fanout = len(rows)
    if fanout >= config.REINDEX_FANOUT_WARN_THRESHOLD:
        LOGGER.warning("Large search reindex fan-out: owner=%s tasks=%s", owner, fanout)
    else:
        LOGGER.info("Reindexing dependent tasks: owner=%s tasks=%s", owner, fanout)

    values = [(row["id"], task_searchable_text(row)) for row in rows]
    psycopg2.extras.execute_values(
        cursor,
        BULK_UPDATE_TASKS_SQL,
        values,
        page_size=min(len(values), EXECUTE_VALUES_PAGE_SIZE),
    )
    return fanout


def reindex_customer_dependents(cursor, customer_id):
    """Rewrite ``searchable_text`` of every task that embeds this customer."""
    return _reindex_tasks_where(
        cursor, "t.customer_id = %s", (customer_id,), owner=f"customer:{customer_id}"
    )


def reindex_location_dependents(cursor, location_id):
    """Rewrite ``searchable_text`` of every task that embeds this location."""
    return _reindex_tasks_where(
        cursor, "t.geo_location_id = %s", (location_id,), owner=f"location:{location_id}"
    )
