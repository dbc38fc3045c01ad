# database.py

import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from flask import g

import config

LOGGER = logging.getLogger(__name__)

SEARCHABLE_TABLES = ("customers", "geo_locations", "tasks")

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS customers (
        id TEXT PRIMARY KEY,
        name TEXT,
        phone TEXT,
        searchable_text TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS geo_locations (
        id TEXT PRIMARY KEY,
        name TEXT,
        address TEXT,
        lat DOUBLE PRECISION NOT NULL,
        lng DOUBLE PRECISION NOT NULL,
        searchable_text TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'PREPARING',
        assignee_ids TEXT[] NOT NULL DEFAULT '{}',
        customer_id TEXT REFERENCES customers(id),
        geo_location_id TEXT REFERENCES geo_locations(id),
        scheduled_at TIMESTAMP,
        started_at TIMESTAMP,
        completed_at TIMESTAMP,
        deleted_at TIMESTAMP,
        searchable_text TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        first_name TEXT,
        last_name TEXT,
        username TEXT,
        phone TEXT,
        email TEXT,
        is_banned BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_customer_id ON tasks (customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_geo_location_id ON tasks (geo_location_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status_created_at ON tasks (status, created_at)",
)


def _connect():
    if config.DATABASE_URL:
        return psycopg2.connect(config.DATABASE_URL, options=f"-c timezone={config.DB_TIMEZONE}")
    return psycopg2.connect(
        dbname=config.DB_NAME,
        user=config.DB_USER,
        password=config.DB_PASSWORD,
        host=config.DB_HOST,
        port=config.DB_PORT,
        options=f"-c timezone={config.DB_TIMEZONE}",
    )


def get_db():
    """Application Context 내에서 유일한 DB 연결을 가져옵니다."""
    if 'db' not in g:
        g.db = _connect()
    return g.db


def close_db(exception=None):
    """요청(request)이 끝나면 자동으로 호출되어 DB 연결을 닫습니다."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def create_standalone_connection():
    """Open a connection outside of the Flask application context (scripts)."""
    return _connect()


def get_cursor(conn):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)


@contextmanager
def managed_cursor(conn):
    cursor = get_cursor(conn)
    try:
        yield cursor
    finally:
        cursor.close()


def column_exists(cursor, table_name, column_name):
    cursor.execute(
        """
        SELECT 1
        FROM information_schema.columns
        WHERE table_name = %s AND column_name = %s
        """,
        (table_name, column_name),
    )
    return cursor.fetchone() is not None


def ensure_column_exists(cursor, table_name, column_name, column_type):
    """Add ``column_name`` when missing. Returns True if the table was altered."""
    if column_exists(cursor, table_name, column_name):
        return False
    cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN IF NOT EXISTS {column_name} {column_type}")
    return True


def setup_database(conn):
    """Create tables and plain indexes. Trigram indexes are built separately."""
    cursor = get_cursor(conn)
    try:
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement)
        for table_name in SEARCHABLE_TABLES:
            if ensure_column_exists(cursor, table_name, "searchable_text", "TEXT"):
                LOGGER.info("Added searchable_text column to %s", table_name)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()


def _invalid_index_names(cursor, index_names):
    cursor.execute(
        """
        SELECT c.relname AS index_name
        FROM pg_index i
        JOIN pg_class c ON c.oid = i.indexrelid
        WHERE NOT i.indisvalid AND c.relname = ANY(%s)
        """,
        (list(index_names),),
    )
    return [row["index_name"] for row in cursor.fetchall()]


def search_index_name(table_name):
    return f"idx_{table_name}_searchable_text_trgm"


def ensure_search_indexes(conn, *, concurrently=True):
    """Build GIN trigram indexes on every ``searchable_text`` column.

    With ``concurrently`` the indexes are built online so writers are not
    blocked. ``CREATE INDEX CONCURRENTLY`` cannot run inside a transaction
    block, so the connection is switched to autocommit for the duration.
    An invalid index left behind by an interrupted concurrent build is dropped
    and rebuilt. Returns the names of indexes (re)built.
    """
    mode = " CONCURRENTLY" if concurrently else ""
    index_names = {table: search_index_name(table) for table in SEARCHABLE_TABLES}
    previous_autocommit = conn.autocommit
    conn.autocommit = True
    cursor = get_cursor(conn)
    built = []
    try:
        cursor.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")
        for index_name in _invalid_index_names(cursor, index_names.values()):
            LOGGER.warning("Dropping invalid search index %s before rebuild", index_name)
            cursor.execute(f"DROP INDEX{mode} IF EXISTS {index_name}")
        for table_name, index_name in index_names.items():
            cursor.execute(
                f"CREATE INDEX{mode} IF NOT EXISTS {index_name} "
                f"ON {table_name} USING GIN (searchable_text gin_trgm_ops)"
            )
            built.append(index_name)
            LOGGER.info("Search index ready: %s on %s", index_name, table_name)
    finally:
        cursor.close()
        conn.autocommit = previous_autocommit
    return built


def setup_database_standalone():
    conn = create_standalone_connection()
    try:
        setup_database(conn)
        ensure_search_indexes(conn, concurrently=True)
    finally:
        conn.close()
