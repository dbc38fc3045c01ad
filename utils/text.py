"""Text normalization utilities for search and indexing.

Search text is stored and queried in one canonical form: lowercase, with every
Vietnamese diacritic folded to its base letter and whitespace collapsed. The
same ``normalize_search_text`` is used when writing ``searchable_text`` columns
and when normalizing incoming queries, so both sides always agree.
"""

import re
import unicodedata
from types import MappingProxyType

_WS_RE = re.compile(r"\s+", re.UNICODE)
_COMBINING_RE = re.compile(r"[\u0300-\u036f]")

_ACCENT_GROUPS = {
    "a": "áàảãạăắằẳẵặâấầẩẫậ",
    "d": "đ",
    "e": "éèẻẽẹêếềểễệ",
    "i": "íìỉĩị",
    "o": "óòỏõọôốồổỗộơớờởỡợ",
    "u": "úùủũụưứừửữự",
    "y": "ýỳỷỹỵ",
}


def _build_accent_table():
    table = {}
    for base, accented in _ACCENT_GROUPS.items():
        for char in accented:
            table[ord(char)] = base
            table[ord(char.upper())] = base
    return MappingProxyType(table)


# Code point -> lowercase base letter, for both cases of every accented letter.
ACCENT_TABLE = _build_accent_table()


def normalize_search_text(value):
    """Normalize text for accent- and case-insensitive search comparisons.

    ``None`` and blank input map to ``""``. Never raises.
    """
    if value is None:
        return ""
    text = str(value)
    if not text.strip():
        return ""
    text = unicodedata.normalize("NFC", text).lower()
    text = text.translate(ACCENT_TABLE)
    text = _COMBINING_RE.sub("", text)
    return _WS_RE.sub(" ", text).strip()


def build_searchable_text(parts):
    """Join the non-empty ``parts`` in order and normalize the result."""
    pieces = []
    for part in parts:
        if part is None:
            continue
        piece = str(part).strip()
        if piece:
            pieces.append(piece)
    return normalize_search_text(" ".join(pieces))


def escape_like(value):
    """Escape ``LIKE`` wildcards so ``value`` matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
