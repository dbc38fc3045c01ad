"""In-memory fuzzy matching over already-fetched records.

Used for instant-feedback pickers (assignees, customers) where the candidate
list is already loaded and a database round-trip per keystroke is not wanted.
Every field and the query are normalized with ``normalize_search_text`` at
match time, then scored with rapidfuzz. The functions are pure: callers that
re-run a search on every keystroke wrap them in ``MemoizedSearch``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from utils.record import read_field, read_text
from utils.text import normalize_search_text

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.3


@dataclass(frozen=True)
class SearchKey:
    """One searchable field of a candidate and its relative weight."""

    name: str
    extract: Callable[[Any], Any]
    weight: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 < self.weight <= 1.0:
            raise ValueError(f"weight for key {self.name!r} must be in (0, 1], got {self.weight}")

    @classmethod
    def field(cls, name: str, weight: float = 1.0) -> "SearchKey":
        """Key that reads ``name`` straight off a mapping or row."""
        return cls(name=name, extract=lambda candidate: read_field(candidate, name), weight=weight)


@dataclass(frozen=True)
class MatchOptions:
    # 0.0 keeps only exact (substring) matches, 1.0 keeps everything.
    threshold: float = DEFAULT_THRESHOLD
    ignore_field_position: bool = True
    sort_by_score: bool = True
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be in [0, 1], got {self.threshold}")
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")


@dataclass(frozen=True)
class MatchResult:
    item: Any
    score: float
    index: int
    key: str


def _safe_extract(key: SearchKey, candidate: Any) -> Any:
    try:
        return key.extract(candidate)
    except Exception:
        LOGGER.debug("Search key %r failed for candidate; treating as empty", key.name, exc_info=True)
        return None


def field_similarity(query: str, text: str, ignore_field_position: bool = True) -> float:
    """Unweighted similarity in ``[0, 1]`` of ``query`` against one field.

    1.0 means ``query`` occurs in the field verbatim (or, with
    ``ignore_field_position=False``, that the field starts with it).
    """
    if not ignore_field_position:
        raw = fuzz.ratio(query, text[: len(query)])
    elif len(query) > len(text):
        # partial_ratio would look for the field inside the query.
        raw = fuzz.ratio(query, text)
    else:
        raw = fuzz.partial_ratio(query, text)
    return raw / 100.0


def score_candidate(
    normalized_query: str,
    candidate: Any,
    keys: Sequence[SearchKey],
    *,
    threshold: float = 1.0,
    ignore_field_position: bool = True,
) -> Tuple[float, Optional[str]]:
    """Return ``(score, key_name)`` for the best key of ``candidate``.

    A key matches when its unweighted similarity ``sim`` satisfies
    ``1 - sim <= threshold``. Among matching keys the one with the highest
    ``sim * weight`` wins and that product is the returned score. Keys with
    a missing value or a failing extractor are skipped. ``key_name`` is
    ``None`` when no key matched.
    """
    best_score = 0.0
    best_key = None
    for key in keys:
        text = normalize_search_text(_safe_extract(key, candidate))
        if not text:
            continue
        similarity = field_similarity(normalized_query, text, ignore_field_position)
        if 1.0 - similarity > threshold:
            continue
        score = similarity * key.weight
        if best_key is None or score > best_score:
            best_score = score
            best_key = key.name
    return best_score, best_key


def rank(
    query: str,
    candidates: Sequence[Any],
    keys: Sequence[SearchKey],
    options: Optional[MatchOptions] = None,
) -> List[MatchResult]:
    """Score every candidate and return the matches, best first.

    Ties keep the original candidate order. A blank query yields every
    candidate with a score of 1.0 in original order.
    """
    options = options or MatchOptions()
    normalized_query = normalize_search_text(query)
    if not normalized_query:
        results = [MatchResult(item, 1.0, index, "") for index, item in enumerate(candidates)]
        return results[: options.limit] if options.limit else results

    results = []
    for index, candidate in enumerate(candidates):
        score, key_name = score_candidate(
            normalized_query,
            candidate,
            keys,
            threshold=options.threshold,
            ignore_field_position=options.ignore_field_position,
        )
        if key_name is not None:
            results.append(MatchResult(candidate, score, index, key_name))

    if options.sort_by_score:
        # sorted() is stable, so equal scores stay in candidate order.
        results = sorted(results, key=lambda result: -result.score)
    if options.limit:
        results = results[: options.limit]
    return results


def search(
    query: str,
    candidates: Optional[Sequence[Any]],
    keys: Sequence[SearchKey],
    options: Optional[MatchOptions] = None,
) -> List[Any]:
    """Return the candidates matching ``query``, best first.

    A blank query returns all candidates unchanged.
    """
    if not candidates:
        return []
    if not normalize_search_text(query):
        return list(candidates)
    return [result.item for result in rank(query, candidates, keys, options)]


def _raw_snapshot(candidates: Sequence[Any], keys: Sequence[SearchKey]) -> Tuple:
    snapshot = []
    for candidate in candidates:
        values = []
        for key in keys:
            value = _safe_extract(key, candidate)
            values.append(None if value is None else str(value))
        snapshot.append(tuple(values))
    return tuple(snapshot)


class MemoizedSearch:
    """``search`` with a single-entry memo.

    The memo is keyed by the query and a snapshot of the raw key values, and
    stores the positions of the matches. A hit maps those positions onto the
    candidates passed in, so the returned items always come from the current
    list while any edit to a searchable field recomputes.
    """

    def __init__(self, keys: Sequence[SearchKey], options: Optional[MatchOptions] = None) -> None:
        self.keys = tuple(keys)
        self.options = options or MatchOptions()
        self.computations = 0
        self._memo_key: Optional[Tuple] = None
        self._memo_indices: List[int] = []

    def _matched_indices(self, query: str, candidates: Sequence[Any]) -> List[int]:
        if not normalize_search_text(query):
            return list(range(len(candidates)))
        return [result.index for result in rank(query, candidates, self.keys, self.options)]

    def __call__(self, query: str, candidates: Optional[Sequence[Any]]) -> List[Any]:
        candidates = candidates or []
        memo_key = (query, _raw_snapshot(candidates, self.keys))
        if memo_key != self._memo_key:
            self._memo_indices = self._matched_indices(query, candidates)
            self._memo_key = memo_key
            self.computations += 1
        return [candidates[index] for index in self._memo_indices]

    def clear(self) -> None:
        self._memo_key = None
        self._memo_indices = []


def _user_full_name(user: Any) -> str:
    parts = [read_text(user, "last_name"), read_text(user, "first_name")]
    return " ".join(part for part in parts if part)


USER_SEARCH_KEYS = (
    SearchKey("name", _user_full_name, 1.0),
    SearchKey.field("username", 1.0),
    SearchKey.field("phone", 0.8),
    SearchKey.field("email", 0.8),
)
