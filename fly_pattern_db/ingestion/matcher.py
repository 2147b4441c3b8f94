"""
Similarity Matching Module
==========================

String similarity used to group same-pattern extractions and to match
material names against the canonical registry.

Edit distance handles short strings and typos; token overlap handles
reordered or partially branded multi-word names ("Tiemco TMC 100" vs
"TMC 100"). Callers usually want combined_similarity(), the max of both.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

# Runs of characters that separate tokens. Digits, apostrophes, "/", "." and
# "-" stay inside tokens so sizes like "6/0" and "3.5mm" survive.
_TOKEN_SEPARATOR = re.compile(r"[^a-z0-9'/.\-]+")

TOKEN_MATCH_THRESHOLD = 0.8

T = TypeVar("T")


@dataclass
class BestMatch:
    """Best candidate found by find_best_match()."""

    match: str
    score: float


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Calculate the Levenshtein distance between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Edit distance
    """
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def string_similarity(s1: str, s2: str) -> float:
    """
    Calculate case-insensitive edit-distance similarity.

    Returns:
        Similarity score between 0.0 and 1.0
    """
    s1 = s1.lower().strip()
    s2 = s2.lower().strip()

    if s1 == s2:
        return 1.0

    if not s1 or not s2:
        return 0.0

    distance = levenshtein_distance(s1, s2)
    max_len = max(len(s1), len(s2))

    return 1.0 - (distance / max_len)


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens."""
    text = text.lower().replace("’", "'").replace("‘", "'")
    return [t for t in _TOKEN_SEPARATOR.split(text) if t]


def _matched_fraction(source: list[str], target: list[str]) -> float:
    matched = 0
    for token in source:
        best = max(string_similarity(token, other) for other in target)
        if best >= TOKEN_MATCH_THRESHOLD:
            matched += 1
    return matched / len(source)


def token_similarity(s1: str, s2: str) -> float:
    """
    Calculate order-insensitive token overlap.

    A token counts as matched when its best edit-distance similarity against
    the other string's tokens is at least 0.8. The matched fractions in both
    directions are combined with a harmonic mean.

    Returns:
        Similarity score between 0.0 and 1.0
    """
    tokens_a = tokenize(s1)
    tokens_b = tokenize(s2)

    if not tokens_a or not tokens_b:
        return 0.0

    precision_a = _matched_fraction(tokens_a, tokens_b)
    precision_b = _matched_fraction(tokens_b, tokens_a)

    if precision_a == 0 or precision_b == 0:
        return 0.0
    return (2 * precision_a * precision_b) / (precision_a + precision_b)


def combined_similarity(s1: str, s2: str) -> float:
    """Higher of string_similarity() and token_similarity()."""
    return max(string_similarity(s1, s2), token_similarity(s1, s2))


def find_best_match(needle: str, candidates: Sequence[str]) -> BestMatch | None:
    """
    Find the candidate most similar to needle.

    Ties keep the earliest candidate.

    Returns:
        The best match, or None if there are no candidates or every score is 0.
    """
    best: BestMatch | None = None
    for candidate in candidates:
        score = combined_similarity(needle, candidate)
        if score > 0 and (best is None or score > best.score):
            best = BestMatch(match=candidate, score=score)
    return best


def cluster_indices(
    items: Sequence[T],
    threshold: float,
    similarity: Callable[[T, T], float] = combined_similarity,
) -> list[list[int]]:
    """
    Greedy single-pass clustering, returning index groups.

    The first unassigned item seeds a cluster and every later unassigned item
    scoring >= threshold against that seed joins it. Membership is decided
    against the seed only, so clusters are not transitively closed: an item
    may sit in one seed's cluster while being closer to another seed.
    """
    clusters: list[list[int]] = []
    assigned: set[int] = set()

    for i, seed in enumerate(items):
        if i in assigned:
            continue
        group = [i]
        assigned.add(i)
        for j in range(i + 1, len(items)):
            if j in assigned:
                continue
            if similarity(seed, items[j]) >= threshold:
                group.append(j)
                assigned.add(j)
        clusters.append(group)

    return clusters


def cluster_similar_strings(strings: Sequence[str], threshold: float) -> list[list[str]]:
    """Greedy seed clustering of strings; see cluster_indices()."""
    return [[strings[i] for i in group] for group in cluster_indices(strings, threshold)]
