import logging
import uuid

from database import get_cursor
from services.search_index import (
    refresh_location_searchable_text,
    reindex_location_dependents,
)
from utils.text import escape_like, normalize_search_text

LOGGER = logging.getLogger(__name__)

UPDATABLE_LOCATION_FIELDS = ("name", "address")

_DEF_NOT_FOUND = {"error": "LOCATION_NOT_FOUND"}


def new_location_id():
    return f"geo_{uuid.uuid4().hex}"


def _clean(value):
    if value is None:
        return None
    if not isinstance(value, (str, int, float)):
        raise ValueError(f"expected a text value, got {type(value).__name__}")
    text = str(value).strip()
    return text or None


def serialize_location(row):
    if not row:
        return None
    return {
        "id": row["id"],
        "name": row["name"],
        "address": row["address"],
        "lat": row["lat"],
        "lng": row["lng"],
    }


def create_location(cursor, *, name, address, lat, lng):
    """Insert a location and its ``searchable_text``. Returns the new id."""
    location_id = new_location_id()
    cursor.execute(
        """
        INSERT INTO geo_locations (id, name, address, lat, lng)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (location_id, _clean(name), _clean(address), float(lat), float(lng)),
    )
    refresh_location_searchable_text(cursor, location_id)
    return location_id


def update_location(conn, *, location_id, changes):
    if not isinstance(changes, dict):
        raise ValueError("changes must be an object")
    unknown = set(changes) - set(UPDATABLE_LOCATION_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported location fields: {', '.join(sorted(unknown))}")

    cursor = get_cursor(conn)
    try:
        cursor.execute(
            "SELECT id, name, address, lat, lng FROM geo_locations WHERE id = %s",
            (location_id,),
        )
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
                f"UPDATE geo_locations SET {assignments}, updated_at = NOW() WHERE id = %s",
                (*changed.values(), location_id),
            )
            refresh_location_searchable_text(cursor, location_id)
            reindexed = reindex_location_dependents(cursor, location_id)

        cursor.execute(
            "SELECT id, name, address, lat, lng FROM geo_locations WHERE id = %s",
            (location_id,),
        )
        row = cursor.fetchone()
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()

    return {
        "location": serialize_location(row),
        "reindexed_tasks": reindexed,
    }


def search_locations(conn, query, *, limit):
    normalized = normalize_search_text(query)
    if not normalized:
        return []

    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, name, address, lat, lng
            FROM geo_locations
            WHERE searchable_text LIKE %s
            ORDER BY similarity(searchable_text, %s) DESC, id ASC
            LIMIT %s
            """,
            (f"%{escape_like(normalized)}%", normalized, limit),
        )
        rows = cursor.fetchall()
    finally:
        cursor.close()
    return [serialize_location(row) for row in rows]
