from __future__ import annotations

from typing import Any, Dict, Mapping

# Interest levels as they appear in the survey export, lowest to highest.
# The position in this tuple is the level's weight (0..3).
NOTHING_HEARD = "Niets over gehoord"
VAGUE_INTEREST = "Vage interesse"
REASONABLE_INTEREST = "Redelijke interesse"
STRONG_INTEREST = "Sterke, concrete interesse"

INTEREST_LEVELS = (
    NOTHING_HEARD,
    VAGUE_INTEREST,
    REASONABLE_INTEREST,
    STRONG_INTEREST,
)

INTEREST_WEIGHTS: Dict[str, int] = {level: weight for weight, level in enumerate(INTEREST_LEVELS)}

# English labels used by the presentation layer
INTEREST_LABELS_EN: Dict[str, str] = {
    NOTHING_HEARD: "Nothing heard",
    VAGUE_INTEREST: "Vague interest",
    REASONABLE_INTEREST: "Reasonable interest",
    STRONG_INTEREST: "Strong, concrete interest",
}


def is_interest_level(value: Any) -> bool:
    return isinstance(value, str) and value in INTEREST_WEIGHTS


def interest_weight(level: Any) -> int:
    """Weight of a single level, -1 for anything outside the canonical set."""
    if not is_interest_level(level):
        return -1
    return INTEREST_WEIGHTS[level]


def empty_counts() -> Dict[str, int]:
    return {level: 0 for level in INTEREST_LEVELS}


def weighted_score(interest_counts: Mapping[str, int]) -> float:
    """
    Collapse a distribution of interest-level counts into one comparable score.

    score = sum(weight(level) * count(level)) / sum(count(level))

    Labels outside INTEREST_LEVELS are ignored, so they neither add weight nor
    count towards the total. An empty distribution scores 0.0, which keeps
    descending sorts stable for items nobody rated.
    """
    total_score = 0
    total_responses = 0

    for level, count in interest_counts.items():
        if level not in INTEREST_WEIGHTS:
            continue
        try:
            n = int(count)
        except (TypeError, ValueError):
            continue
        if n <= 0:
            continue
        total_score += INTEREST_WEIGHTS[level] * n
        total_responses += n

    if total_responses == 0:
        return 0.0
    return total_score / total_responses
