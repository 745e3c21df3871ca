"""
Fuzzy string matching utilities.

Maps noisy OCR line-item descriptions onto catalog entries.  Two functions
form the public surface:

  - edit_distance: Levenshtein distance (unit-cost insert/delete/substitute,
    no transpositions).
  - find_best_match: scores every candidate label against a query and
    returns the best one if it clears the acceptance threshold.

Both are pure: no I/O, no shared state, and each call allocates its own
distance table, so they can be called from any thread.

Public API:
    edit_distance(a, b) → int
    similarity(distance, len_a, len_b) → float
    find_best_match(query, candidates, key_extractor) → MatchResult | None
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from config.matching_config import (
    DELETION_COST,
    INSERTION_COST,
    MATCH_THRESHOLD,
    SUBSTITUTION_COST,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════════
# Data class
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MatchResult(Generic[T]):
    """Winning candidate of find_best_match() and its similarity score."""

    best_match: T
    score: float


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def edit_distance(
    a: str | None,
    b: str | None,
    *,
    insertion_cost: int = INSERTION_COST,
    deletion_cost: int = DELETION_COST,
    substitution_cost: int = SUBSTITUTION_COST,
) -> int:
    """
    Minimum cost of single-character edits that turn *a* into *b*.

    Case-sensitive.  ``None`` is treated as an empty string.  With the
    default unit costs this is the classic Levenshtein distance.

    The DP table has len(b)+1 rows and len(a)+1 columns and lives in one
    flat row-major list.  Row 0 is the cost of deleting a prefix of *a*,
    column 0 the cost of inserting a prefix of *b*.

    Args:
        a: Source string.
        b: Target string.
        insertion_cost: Cost of inserting one character of *b*.
        deletion_cost: Cost of deleting one character of *a*.
        substitution_cost: Cost of replacing one character.

    Returns:
        Non-negative integer distance.
    """
    a = a or ""
    b = b or ""
    len_a = len(a)
    len_b = len(b)

    if len_a == 0:
        return len_b * insertion_cost
    if len_b == 0:
        return len_a * deletion_cost

    cols = len_a + 1
    matrix = [0] * ((len_b + 1) * cols)

    for j in range(1, cols):
        matrix[j] = j * deletion_cost
    for i in range(1, len_b + 1):
        matrix[i * cols] = i * insertion_cost

    for i in range(1, len_b + 1):
        row = i * cols
        prev_row = row - cols
        b_char = b[i - 1]
        for j in range(1, cols):
            if b_char == a[j - 1]:
                matrix[row + j] = matrix[prev_row + j - 1]
            else:
                matrix[row + j] = min(
                    matrix[prev_row + j - 1] + substitution_cost,
                    matrix[row + j - 1] + deletion_cost,
                    matrix[prev_row + j] + insertion_cost,
                )

    return matrix[len_b * cols + len_a]


def similarity(distance: int, len_a: int, len_b: int) -> float:
    """
    Normalize an edit distance to a score in [0, 1] (1 = identical).

    Two empty strings are identical by definition.
    """
    max_len = max(len_a, len_b)
    if max_len == 0:
        return 1.0
    return min(1.0, max(0.0, 1.0 - distance / max_len))


def find_best_match(
    query: str | None,
    candidates: Sequence[T],
    key_extractor: Callable[[T], str],
    threshold: float = MATCH_THRESHOLD,
) -> MatchResult[T] | None:
    """
    Find the candidate whose label is closest to *query*.

    Both strings are lower-cased before comparison.  Candidates are scanned
    in input order and only a strictly higher score replaces the current
    best, so on a tie the earliest candidate wins.  Reordering *candidates*
    can therefore change which record is selected.

    Exceptions raised by *key_extractor* are not caught.

    Args:
        query: Free-text description to match (e.g. an OCR line item).
        candidates: Records to choose from; never inspected directly.
        key_extractor: Returns the comparable label of a candidate.
        threshold: The best score must be strictly greater than this.

    Returns:
        MatchResult with the winning candidate and its score, or None when
        the query or candidate list is empty or no score clears threshold.
    """
    if not query or len(candidates) == 0:
        return None

    query_lower = query.lower()

    best_candidate: T | None = None
    best_score: float = -1.0

    for candidate in candidates:
        label_lower = key_extractor(candidate).lower()
        distance = edit_distance(query_lower, label_lower)
        score = similarity(distance, len(query_lower), len(label_lower))

        if score > best_score:
            best_score = score
            best_candidate = candidate

    if best_score > threshold:
        logger.debug(f"Fuzzy matched '{query}' (score={best_score:.3f})")
        return MatchResult(best_match=best_candidate, score=best_score)

    logger.debug(
        f"No fuzzy match for '{query}' above threshold {threshold} "
        f"(best score was {best_score:.3f})"
    )
    return None
