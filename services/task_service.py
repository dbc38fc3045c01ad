"""Task writes and the server-side task search.

Every write that touches a searchable field recomputes ``tasks.searchable_text``
before the single commit. The search path normalizes the query with the same
function and does a substring match against that column, composed with the
structured filters by AND.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database import get_cursor
from services.customer_service import find_or_create_customer
from services.location_service import create_location
from services.search_index import refresh_task_searchable_text
from utils.text import escape_like, normalize_search_text

LOGGER = logging.getLogger(__name__)

TASK_STATUSES = ("PREPARING", "READY", "IN_PROGRESS", "ON_HOLD", "COMPLETED")
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"

SORTABLE_FIELDS = ("created_at", "updated_at", "scheduled_at", "completed_at", "id")
SORT_ORDERS = ("asc", "desc")
DATE_RANGE_FIELDS = ("scheduled", "created", "completed")

UPDATABLE_TASK_FIELDS = (
    "title",
    "description",
    "status",
    "scheduled_at",
    "assignee_ids",
    "customer_id",
    "geo_location_id",
)
SEARCH_AFFECTING_FIELDS = frozenset({"title", "description", "customer_id", "geo_location_id"})

ROLE_ADMIN = "admin"

_DEF_NOT_FOUND = {"error": "TASK_NOT_FOUND"}

TASK_SELECT_SQL = """
    SELECT
        t.id,
        t.title,
        t.description,
        t.status,
        t.assignee_ids,
        t.customer_id,
        t.geo_location_id,
        t.scheduled_at,
        t.started_at,
        t.completed_at,
        t.created_at,
        t.updated_at,
        c.name AS customer_name,
        c.phone AS customer_phone,
        g.name AS location_name,
        g.address AS location_address,
        g.lat AS location_lat,
        g.lng AS location_lng
    FROM tasks t
    LEFT JOIN customers c ON c.id = t.customer_id
    LEFT JOIN geo_locations g ON g.id = t.geo_location_id
"""


class InvalidCursorError(ValueError):
    pass


@dataclass
class TaskSearchFilters:
    search: Optional[str] = None
    statuses: List[str] = field(default_factory=list)
    assignee_ids: List[str] = field(default_factory=list)
    assigned_only: bool = False
    customer_id: Optional[str] = None
    date_ranges: Dict[str, tuple] = field(default_factory=dict)
    sort_by: str = "created_at"
    sort_order: str = "desc"
    offset: int = 0
    take: int = 20


def encode_cursor(offset: int) -> str:
    payload = json.dumps({"offset": int(offset)}).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii")


def decode_cursor(raw: Optional[str]) -> int:
    if not raw:
        return 0
    try:
        payload = json.loads(base64.urlsafe_b64decode(raw.encode("ascii")).decode("utf-8"))
        offset = int(payload["offset"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise InvalidCursorError("cursor is malformed") from exc
    if offset < 0:
        raise InvalidCursorError("cursor is malformed")
    return offset


def _isoformat(value):
    return value.isoformat() if hasattr(value, "isoformat") else value


def serialize_task(row: Dict[str, Any]) -> Dict[str, Any]:
    customer = None
    if row.get("customer_id"):
        customer = {
            "id": row["customer_id"],
            "name": row.get("customer_name"),
            "phone": row.get("customer_phone"),
        }
    location = None
    if row.get("geo_location_id"):
        location = {
            "id": row["geo_location_id"],
            "name": row.get("location_name"),
            "address": row.get("location_address"),
            "lat": row.get("location_lat"),
            "lng": row.get("location_lng"),
        }
    return {
        "id": row["id"],
        "title": row["title"],
        "description": row.get("description"),
        "status": row["status"],
        "assignee_ids": list(row.get("assignee_ids") or []),
        "customer": customer,
        "geo_location": location,
        "scheduled_at": _isoformat(row.get("scheduled_at")),
        "started_at": _isoformat(row.get("started_at")),
        "completed_at": _isoformat(row.get("completed_at")),
        "created_at": _isoformat(row.get("created_at")),
        "updated_at": _isoformat(row.get("updated_at")),
    }


def _fetch_task(cursor, task_id):
    cursor.execute(TASK_SELECT_SQL + " WHERE t.id = %s AND t.deleted_at IS NULL", (task_id,))
    return cursor.fetchone()


def _text_field(data, key, *, required=False):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    value = (value or "").strip()
    if required and not value:
        raise ValueError(f"{key} is required")
    return value or None


def _geo_location(raw):
    """Validated ``{name, address, lat, lng}`` or ``None`` when no coordinates are given."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("geo_location must be an object")
    if raw.get("lat") is None or raw.get("lng") is None:
        return None
    try:
        lat = float(raw["lat"])
        lng = float(raw["lng"])
    except (TypeError, ValueError):
        raise ValueError("geo_location lat/lng must be numbers") from None
    return {"name": raw.get("name"), "address": raw.get("address"), "lat": lat, "lng": lng}


def create_task(conn, data: Dict[str, Any]) -> Dict[str, Any]:
    """Create a task with its customer and location in one transaction."""
    if not isinstance(data, dict):
        raise ValueError("task data must be an object")
    title = _text_field(data, "title", required=True)
    description = _text_field(data, "description")
    geo = _geo_location(data.get("geo_location"))
    status = data.get("status") or TASK_STATUSES[0]
    if status not in TASK_STATUSES:
        raise ValueError(f"Unsupported status: {status}")

    cursor = get_cursor(conn)
    try:
        customer_id = find_or_create_customer(
            cursor,
            name=data.get("customer_name"),
            phone=data.get("customer_phone"),
        )

        location_id = None
        if geo is not None:
            location_id = create_location(
                cursor,
                name=geo.get("name"),
                address=geo.get("address"),
                lat=geo["lat"],
                lng=geo["lng"],
            )

        cursor.execute(
            """
            INSERT INTO tasks (
                title,
                description,
                status,
                assignee_ids,
                customer_id,
                geo_location_id,
                scheduled_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                title,
                description,
                status,
                list(data.get("assignee_ids") or []),
                customer_id,
                location_id,
                data.get("scheduled_at"),
            ),
        )
        task_id = cursor.fetchone()["id"]
        refresh_task_searchable_text(cursor, task_id)
        row = _fetch_task(cursor, task_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()

    LOGGER.info("Created task id=%s customer=%s location=%s", task_id, customer_id, location_id)
    return serialize_task(row)


def update_task(conn, task_id, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ``changes`` to a task, recomputing its search text when needed."""
    if not isinstance(changes, dict):
        raise ValueError("task changes must be an object")
    unknown = set(changes) - set(UPDATABLE_TASK_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported task fields: {', '.join(sorted(unknown))}")
    changes = dict(changes)
    if "title" in changes:
        changes["title"] = _text_field(changes, "title", required=True)
    if "description" in changes:
        changes["description"] = _text_field(changes, "description")
    if "status" in changes and changes["status"] not in TASK_STATUSES:
        raise ValueError(f"Unsupported status: {changes['status']}")

    cursor = get_cursor(conn)
    try:
        existing = _fetch_task(cursor, task_id)
        if existing is None:
            conn.rollback()
            return _DEF_NOT_FOUND

        if changes:
            assignments = [f"{column} = %s" for column in changes]
            params = list(changes.values())
            if changes.get("status") == STATUS_IN_PROGRESS:
                assignments.append("started_at = COALESCE(started_at, NOW())")
            elif changes.get("status") == STATUS_COMPLETED:
                assignments.append("completed_at = COALESCE(completed_at, NOW())")
            cursor.execute(
                f"UPDATE tasks SET {', '.join(assignments)}, updated_at = NOW() WHERE id = %s",
                (*params, task_id),
            )
            if SEARCH_AFFECTING_FIELDS & set(changes):
                refresh_task_searchable_text(cursor, task_id)

        row = _fetch_task(cursor, task_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()

    return {"task": serialize_task(row)}


def soft_delete_task(conn, task_id) -> Dict[str, Any]:
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            UPDATE tasks
            SET deleted_at = NOW(), updated_at = NOW()
            WHERE id = %s AND deleted_at IS NULL
            RETURNING id
            """,
            (task_id,),
        )
        row = cursor.fetchone()
        if row is None:
            conn.rollback()
            return _DEF_NOT_FOUND
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()
    return {"task_id": row["id"]}


def build_task_search_query(filters: TaskSearchFilters, *, user: Dict[str, Any]):
    """Return ``(sql, params)`` for a task search.

    Non-admin users only ever see tasks they are assigned to.
    """
    where_clauses = ["t.deleted_at IS NULL"]
    params: List[Any] = []

    normalized = normalize_search_text(filters.search)
    if normalized:
        where_clauses.append("t.searchable_text LIKE %s")
        params.append(f"%{escape_like(normalized)}%")

    if filters.statuses:
        where_clauses.append("t.status = ANY(%s)")
        params.append(list(filters.statuses))

    if filters.assignee_ids:
        where_clauses.append("t.assignee_ids && %s::text[]")
        params.append(list(filters.assignee_ids))

    assigned_only = filters.assigned_only or user.get("role") != ROLE_ADMIN
    if assigned_only:
        if not user.get("id"):
            raise ValueError("a user id is required to list assigned tasks")
        where_clauses.append("%s = ANY(t.assignee_ids)")
        params.append(user["id"])

    if filters.customer_id:
        where_clauses.append("t.customer_id = %s")
        params.append(filters.customer_id)

    for name in DATE_RANGE_FIELDS:
        start, end = filters.date_ranges.get(name, (None, None))
        if start is not None:
            where_clauses.append(f"t.{name}_at >= %s")
            params.append(start)
        if end is not None:
            where_clauses.append(f"t.{name}_at <= %s")
            params.append(end)

    if filters.sort_by not in SORTABLE_FIELDS:
        raise ValueError(f"Unsupported sort_by: {filters.sort_by}")
    if filters.sort_order not in SORT_ORDERS:
        raise ValueError(f"Unsupported sort_order: {filters.sort_order}")
    direction = filters.sort_order.upper()

    order_sql = f"t.{filters.sort_by} {direction} NULLS LAST"
    if filters.sort_by != "id":
        order_sql += f", t.id {direction}"

    sql = (
        TASK_SELECT_SQL
        + " WHERE "
        + " AND ".join(where_clauses)
        + f" ORDER BY {order_sql} LIMIT %s OFFSET %s"
    )
    params.extend([filters.take + 1, filters.offset])
    return sql, tuple(params)


def search_tasks(conn, filters: TaskSearchFilters, *, user: Dict[str, Any]) -> Dict[str, Any]:
    sql, params = build_task_search_query(filters, user=user)

    cursor = get_cursor(conn)
    try:
        cursor.execute(sql, params)
        rows = cursor.fetchall()
    finally:
        cursor.close()

    has_next_page = len(rows) > filters.take
    rows = rows[: filters.take]
    next_cursor = encode_cursor(filters.offset + filters.take) if has_next_page else None

    return {
        "tasks": [serialize_task(row) for row in rows],
        "next_cursor": next_cursor,
        "has_next_page": has_next_page,
    }
