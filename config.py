# config.py
import json
import os


def _parse_float(name, default, *, minimum=None, maximum=None):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    if maximum is not None and value > maximum:
        return default
    return value


def _parse_int(name, default, *, minimum=1):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < minimum:
        return default
    return value


def _parse_origins(raw):
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            origins = [str(item).strip() for item in parsed if str(item).strip()]
            return origins or None
    origins = [item.strip() for item in raw.split(",") if item.strip()]
    return origins or None


# --- Database ---
DATABASE_URL = (os.getenv('DATABASE_URL') or '').strip()
DB_NAME = os.getenv('DB_NAME')
DB_USER = os.getenv('DB_USER')
DB_PASSWORD = os.getenv('DB_PASSWORD')
DB_HOST = os.getenv('DB_HOST', 'localhost')
DB_PORT = os.getenv('DB_PORT', '5432')
DB_TIMEZONE = os.getenv('DB_TIMEZONE', 'Asia/Ho_Chi_Minh')

# --- CORS ---
CORS_ALLOW_ORIGINS = _parse_origins(os.getenv('CORS_ALLOW_ORIGINS'))
CORS_SUPPORTS_CREDENTIALS = os.getenv('CORS_SUPPORTS_CREDENTIALS', '0').strip() in {'1', 'true', 'yes'}

# --- Server-tier search ---
SEARCH_MAX_RESULTS = _parse_int('SEARCH_MAX_RESULTS', 50)
SEARCH_DEFAULT_TAKE = _parse_int('SEARCH_DEFAULT_TAKE', 20)
SEARCH_MAX_TAKE = _parse_int('SEARCH_MAX_TAKE', 100)

# --- In-memory fuzzy matching ---
# 0.0 accepts only exact matches, 1.0 accepts anything.
FUZZY_MATCH_THRESHOLD = _parse_float('FUZZY_MATCH_THRESHOLD', 0.3, minimum=0.0, maximum=1.0)

# --- Indexing ---
BACKFILL_BATCH_SIZE = _parse_int('BACKFILL_BATCH_SIZE', 500)
REINDEX_FANOUT_WARN_THRESHOLD = _parse_int('REINDEX_FANOUT_WARN_THRESHOLD', 1000)
