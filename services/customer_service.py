import logging
import uuid

from database import get_cursor
from services.search_index import (
    refresh_customer_searchable_text,
    reindex_customer_dependents,
)
from utils.text import escape_like, normalize_search_text

LOGGER = logging.getLogger(__name__)

UPDATABLE_CUSTOMER_FIELDS = ("name", "phone")

_DEF_NOT_FOUND = {"error": "CUSTOMER_NOT_FOUND"}


def new_customer_id():
    return f"cus_{uuid.uuid4().hex}"


def _clean(value):
    if value is None:
        return None
    if not isinstance(value, (str, int, float)):
        raise ValueError(f"expected a text value, got {type(value).__name__}")
    text = str(value).strip()
    return text or None


def serialize_customer(row):
    if not row:
        return None
    return {
        "id": row["id"],
        "name": row["name"],
        "phone": row["phone"],
    }


def find_or_create_customer(cursor, *, name, phone):
    """Reuse a customer with the same name and phone, or insert a new one.

    Returns the customer id, or ``None`` when neither field is given. A newly
    inserted customer gets its ``searchable_text`` in the same transaction.
    """
    name = _clean(name)
    phone = _clean(phone)
    if name is None and phone is None:
        return None

    cursor.execute(
        """
        SELECT id FROM customers
        WHERE name IS NOT DISTINCT FROM %s AND phone IS NOT DISTINCT FROM %s
        ORDER BY created_at ASC
        LIMIT 1
        """,
        (name, phone),
    )
    row = cursor.fetchone()
    if row is not None:
        return row["id"]

    customer_id = new_customer_id()
    cursor.execute(
        "INSERT INTO customers (id, name, phone) VALUES (%s, %s, %s)",
        (customer_id, name, phone),
    )
    refresh_customer_searchable_text(cursor, customer_id)
    LOGGER.debug("Created customer id=%s", customer_id)
    return customer_id


def update_customer(conn, *, customer_id, changes):
    """Update a customer and rewrite the search text of every task embedding it.

    The customer row, its own ``searchable_text`` and all dependent tasks are
    written in one transaction.
    """
    if not isinstance(changes, dict):
        raise ValueError("changes must be an object")
    unknown = set(changes) - set(UPDATABLE_CUSTOMER_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported customer fields: {', '.join(sorted(unknown))}")

    cursor = get_cursor(conn)
    try:
        cursor.execute("SELECT id, name, phone FROM customers WHERE id = %s", (customer_id,))
        existing = cursor.fetchone()
        if existing is None:
            conn.rollback()
            return _DEF_NOT_FOUND

        updates = {field: _clean(value) for field, value in changes.items()}
        changed = {field: value for field, value in updates.items() if existing[field] != value}

        reindexed = 0
        if changed:
            assignments = ", ".join(f"{field} = %s" for field in changed)
            cursor.execute(
                f"UPDATE customers SET {assignments}, updated_at = NOW() WHERE id = %s",
                (*changed.values(), customer_id),
            )
            refresh_customer_searchable_text(cursor, customer_id)
            reindexed = reindex_customer_dependents(cursor, customer_id)

        cursor.execute("SELECT id, name, phone FROM customers WHERE id = %s", (customer_id,))
        row = cursor.fetchone()
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()

    return {
        "customer": serialize_customer(row),
        "reindexed_tasks": reindexed,
    }


def search_customers(conn, query, *, limit):
    """Substring search over customer ``searchable_text``, closest first."""
    normalized = normalize_search_text(query)
    if not normalized:
        return []

    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, name, phone
            FROM customers
            WHERE searchable_text LIKE %s
            ORDER BY similarity(searchable_text, %s) DESC, id ASC
            LIMIT %s
            """,
            (f"%{escape_like(normalized)}%", normalized, limit),
        )
        rows = cursor.fetchall()
    finally:
        cursor.close()
    return [serialize_customer(row) for row in rows]
