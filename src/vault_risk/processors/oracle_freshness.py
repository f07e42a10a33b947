"""Oracle freshness scoring."""

from __future__ import annotations

from ..constants import (
    ORACLE_DAY_HOURS,
    ORACLE_DAY_SCORE,
    ORACLE_FRESH_HOURS,
    ORACLE_FRESH_SCORE,
    ORACLE_MONTH_HOURS,
    ORACLE_OPAQUE_SCORE,
    ORACLE_WEEK_HOURS,
    ORACLE_WEEK_SCORE,
)
from ..domain import OracleTimestampData

# (start hours, end hours, score at start, score at end)
_SEGMENTS = (
    (ORACLE_FRESH_HOURS, ORACLE_DAY_HOURS, ORACLE_FRESH_SCORE, ORACLE_DAY_SCORE),
    (ORACLE_DAY_HOURS, ORACLE_WEEK_HOURS, ORACLE_DAY_SCORE, ORACLE_WEEK_SCORE),
    (ORACLE_WEEK_HOURS, ORACLE_MONTH_HOURS, ORACLE_WEEK_SCORE, ORACLE_OPAQUE_SCORE),
)


def score_oracle_age(age_seconds: float | None) -> float:
    """Map an oracle age to a 0-100 freshness score.

    Under an hour scores 100. From there the score falls linearly through
    80 at one day and 60 at one week down to the opaque floor of 20 at 30
    days. An unresolved age scores the opaque floor.
    """
    if age_seconds is None or age_seconds < 0:
        return ORACLE_OPAQUE_SCORE

    hours = age_seconds / 3600
    if hours < ORACLE_FRESH_HOURS:
        return ORACLE_FRESH_SCORE

    for start, end, high, low in _SEGMENTS:
        if hours < end:
            return high - (high - low) * (hours - start) / (end - start)
    return ORACLE_OPAQUE_SCORE


def score_oracle(data: OracleTimestampData | None) -> float:
    if data is None:
        return ORACLE_OPAQUE_SCORE
    return score_oracle_age(data.age_seconds)
