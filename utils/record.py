"""Helpers for reading fields off rows that may be partial or missing."""


def read_field(obj, key, default=None):
    """Read ``key`` from a mapping, row or plain object.

    ``None`` rows, missing keys and lookups that blow up all yield ``default``.
    Joined rows from ``LEFT JOIN`` queries hit the ``None`` path routinely.
    """
    if obj is None:
        return default
    if hasattr(obj, "get"):
        try:
            return obj.get(key, default)
        except Exception:
            return default
    try:
        return obj[key]
    except (KeyError, IndexError, TypeError):
        pass
    return getattr(obj, key, default)


def read_text(obj, key):
    """Return the field as a stripped string, or ``None`` when it is blank."""
    value = read_field(obj, key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None
