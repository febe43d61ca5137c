"""Fuzzy string helpers shared by invoice matching and budget lookup."""
from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any, TypeVar

T = TypeVar("T")

_WORD_SPLIT = re.compile(r"[\s\-_,&]+")
_TOKEN_SPLIT = re.compile(r"[\s\-_,&./]+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_VENDOR_SUFFIX = re.compile(r"\s+(llc|inc|corp|co|ltd|lp|llp)\.?$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute)."""

    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _words(text: str) -> list[str]:
    return [word for word in _WORD_SPLIT.split(text) if len(word) > 1]


def _word_matches(word: str, others: list[str]) -> bool:
    return any(other in word or word in other or levenshtein_distance(word, other) <= 1 for other in others)


def fuzzy_match_score(value: str | None, target: str | None) -> float:
    """Similarity in ``[0, 1]``.

    Exact match scores 1.0 and containment 0.9. Token overlap scores
    0.65-0.9 and short-string edit similarity 0.56-0.8.
    """

    if not value or not target:
        return 0.0
    a = value.lower().strip()
    b = target.lower().strip()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.9

    a_words = _words(a)
    b_words = _words(b)
    if a_words and b_words:
        matched = sum(1 for word in a_words if _word_matches(word, b_words))
        matched += sum(1 for word in b_words if _word_matches(word, a_words))
        word_score = matched / (len(a_words) + len(b_words))
        if word_score >= 0.5:
            return 0.65 + word_score * 0.25

    if len(a) < 30 and len(b) < 30:
        similarity = 1 - levenshtein_distance(a, b) / max(len(a), len(b))
        if similarity >= 0.7:
            return similarity * 0.8

    return 0.0


def normalize_vendor_name(vendor: str | None) -> str:
    """Lowercase, drop a trailing company suffix and collapse whitespace."""

    if not vendor:
        return ""
    cleaned = _VENDOR_SUFFIX.sub("", vendor.lower().strip())
    return _WHITESPACE.sub(" ", cleaned)


def tokenize(text: str | None) -> list[str]:
    """Lowercase alphanumeric tokens longer than two characters."""

    if not text:
        return []
    tokens = []
    for word in _TOKEN_SPLIT.split(text.lower()):
        if len(word) <= 2:
            continue
        token = _NON_ALNUM.sub("", word)
        if token:
            tokens.append(token)
    return tokens


def find_best_budget_match(
    category: str,
    budgets: Iterable[T] | None,
    threshold: float = 0.6,
) -> tuple[T, float] | None:
    """Best budget for a free-text category, matched on raw or standard name."""

    best: tuple[T, float] | None = None
    for budget in budgets or ():
        raw: Any = getattr(budget, "builder_category_raw", None)
        score = max(
            fuzzy_match_score(category, raw or ""),
            fuzzy_match_score(category, getattr(budget, "category", "")),
        )
        if score >= threshold and (best is None or score > best[1]):
            best = (budget, score)
    return best


__all__ = [
    "find_best_budget_match",
    "fuzzy_match_score",
    "levenshtein_distance",
    "normalize_vendor_name",
    "tokenize",
]
