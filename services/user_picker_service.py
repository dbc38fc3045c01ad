"""Assignee picker: fuzzy search over the loaded user list."""

import config
from database import get_cursor
from services.fuzzy_matcher import USER_SEARCH_KEYS, MatchOptions, search


def list_active_users(conn):
    cursor = get_cursor(conn)
    try:
        cursor.execute(
            """
            SELECT id, first_name, last_name, username, phone, email
            FROM users
            WHERE is_banned = FALSE
            ORDER BY created_at ASC, id ASC
            """
        )
        return [dict(row) for row in cursor.fetchall()]
    finally:
        cursor.close()


def search_users(conn, query, *, threshold=None, limit=None):
    users = list_active_users(conn)
    options = MatchOptions(
        threshold=config.FUZZY_MATCH_THRESHOLD if threshold is None else threshold,
        limit=limit,
    )
    return search(query, users, USER_SEARCH_KEYS, options)
