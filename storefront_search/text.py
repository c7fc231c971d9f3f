"""Text helpers shared by query handling, history matching and the local index.

Only the pieces needed outside Elasticsearch live here: query cleanup,
accent folding, tokenization and the edit-distance rules that mirror
Elasticsearch's ``fuzziness: AUTO``.
"""
from __future__ import annotations

import re
from typing import List

from unidecode import unidecode

_WHITESPACE_RE = re.compile(r"\s+")
# Mirrors the standard tokenizer closely enough for product names.
_TOKEN_RE = re.compile(r"[0-9a-z]+")


def normalize_query(q: str | None) -> str:
    """Trim user input and collapse inner whitespace."""
    if not q:
        return ""
    return _WHITESPACE_RE.sub(" ", q).strip()


def fold(text: str | None) -> str:
    """Lowercase and strip accents (``"Crème"`` -> ``"creme"``)."""
    if not text:
        return ""
    return unidecode(text).lower()


def tokenize(text: str | None) -> List[str]:
    return _TOKEN_RE.findall(fold(text))


def auto_fuzziness(term: str) -> int:
    """Allowed edits for a term: 0 up to 2 chars, 1 up to 5, 2 beyond."""
    length = len(term)
    if length <= 2:
        return 0
    if length <= 5:
        return 1
    return 2


def edit_distance(a: str, b: str, limit: int | None = None) -> int:
    """Levenshtein distance with transpositions counted as one edit.

    When ``limit`` is given the computation stops early and returns
    ``limit + 1`` once the distance is known to exceed it.
    """
    if a == b:
        return 0
    if limit is not None and abs(len(a) - len(b)) > limit:
        return limit + 1
    prev_prev: List[int] = []
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current[j] = min(prev[j] + 1, current[j - 1] + 1, prev[j - 1] + cost)
            if i > 1 and j > 1 and ca == b[j - 2] and a[i - 2] == cb:
                current[j] = min(current[j], prev_prev[j - 2] + 1)
        if limit is not None and min(current) > limit:
            return limit + 1
        prev_prev, prev = prev, current
    return prev[-1]


def fuzzy_match(term: str, token: str, prefix_length: int = 0) -> bool:
    """True when ``token`` is within AUTO fuzziness of ``term``.

    The first ``prefix_length`` characters must match exactly, as with the
    ``prefix_length`` option of an Elasticsearch match query.
    """
    if term == token:
        return True
    if prefix_length and term[:prefix_length] != token[:prefix_length]:
        return False
    allowed = auto_fuzziness(term)
    if allowed == 0:
        return False
    return edit_distance(term, token, limit=allowed) <= allowed
