"""
Bounded adjustment arithmetic for classifier feedback.

Every correction against a category lowers the family's confidence in that
category by a fixed step until a floor is reached. The ceiling exists for
categories that may later receive boosts; nothing here produces positive
adjustments today.
"""

from collections import defaultdict
from typing import Dict, Iterable, Mapping

from feedbackloop.learning.schemas import (
    LEDGER_MAX_ADJUSTMENT,
    LEDGER_MIN_ADJUSTMENT,
    CorrectionPattern,
)

BASE_PER_CORRECTION = -5.0
MAX_NEGATIVE = LEDGER_MIN_ADJUSTMENT
MAX_POSITIVE = LEDGER_MAX_ADJUSTMENT

MAX_ESTIMATED_IMPROVEMENT = 5.0
IMPROVEMENT_PER_FLAGGED_PATTERN = 0.5


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value to [lower, upper]."""
    return max(lower, min(upper, value))


def pattern_adjustment(count: int) -> float:
    """Adjustment for a pattern seen `count` times, floored at MAX_NEGATIVE."""
    return max(count * BASE_PER_CORRECTION, MAX_NEGATIVE)


def category_adjustments(patterns: Iterable[CorrectionPattern]) -> Dict[str, float]:
    """
    Roll pattern adjustments up to their original category.

    Adjustments of all patterns sharing an original category are summed and
    the sum is floored at MAX_NEGATIVE again.
    """
    totals: Dict[str, float] = defaultdict(float)
    for pattern in patterns:
        totals[pattern.original_category] += pattern.adjustment
    return {category: max(total, MAX_NEGATIVE) for category, total in totals.items()}


def merge_category_adjustments(
    previous: Mapping[str, float],
    computed: Mapping[str, float],
) -> Dict[str, float]:
    """
    Merge freshly computed category adjustments over the previous ones.

    A computed value replaces the previous value for its category, since
    pattern counts already carry the family's history. Categories only in
    `previous` are kept. Every result is clamped to [MAX_NEGATIVE, MAX_POSITIVE].
    """
    merged = {category: clamp(value, MAX_NEGATIVE, MAX_POSITIVE) for category, value in previous.items()}
    for category, value in computed.items():
        merged[category] = clamp(value, MAX_NEGATIVE, MAX_POSITIVE)
    return merged


def calculate_estimated_improvement(total_corrections: int, flagged_patterns: int) -> float:
    """
    Estimate the accuracy improvement (percent) a period's corrections could yield.

    Piecewise-linear in the number of corrections so that small volumes
    still produce a non-zero estimate with diminishing returns:
        <= 100:  0.1 + (c / 100) * 0.4
        <= 1000: 0.5 + ((c - 100) / 900) * 0.5
        > 1000:  1.0
    plus 0.5 per flagged pattern, clamped to [0, 5] and rounded to 0.1.
    No corrections means no improvement.

    Examples:
        >>> calculate_estimated_improvement(100, 0)
        0.5
        >>> calculate_estimated_improvement(1_000_000, 100)
        5.0
    """
    if total_corrections <= 0 and flagged_patterns <= 0:
        return 0.0

    if total_corrections <= 0:
        base = 0.0
    elif total_corrections <= 100:
        base = 0.1 + (total_corrections / 100) * 0.4
    elif total_corrections <= 1000:
        base = 0.5 + ((total_corrections - 100) / 900) * 0.5
    else:
        base = 1.0

    estimate = base + flagged_patterns * IMPROVEMENT_PER_FLAGGED_PATTERN
    return round(clamp(estimate, 0.0, MAX_ESTIMATED_IMPROVEMENT), 1)
