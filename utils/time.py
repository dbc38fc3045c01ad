"""Time utilities for local-naive comparisons.

Timestamps are stored as naive ``TIMESTAMP`` values that represent
Asia/Ho_Chi_Minh local time. Filters coming from clients must be converted to
the same representation before they are compared in SQL.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo


_LOCAL_TZ = ZoneInfo("Asia/Ho_Chi_Minh")


def parse_iso_naive_local(value: str | None) -> datetime | None:
    """Parse an ISO8601 string into a naive local datetime.

    * A bare date (``2025-01-31``) is read as local midnight.
    * A naive datetime is treated as already local and returned as-is.
    * An offset-aware datetime is converted to local time and the tzinfo dropped.

    Returns ``None`` if the input is empty or cannot be parsed.
    """

    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed_date = date.fromisoformat(value)
        except ValueError:
            return None
        return datetime(parsed_date.year, parsed_date.month, parsed_date.day)

    if parsed.tzinfo is None:
        return parsed

    return parsed.astimezone(_LOCAL_TZ).replace(tzinfo=None)
