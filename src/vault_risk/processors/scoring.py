"""Component scores, composite market score and letter grade."""

from __future__ import annotations

from ..constants import (
    BAD_DEBT_OVERRIDE_USD,
    GRADE_THRESHOLDS,
    HEADROOM_COMFORT_RATIO,
    HEADROOM_SOLVENT_FLOOR,
    HEADROOM_UNDERWATER_RATIO,
    UTILIZATION_UNDERSHOOT_PENALTY,
)
from ..domain import Grade, Market, MarketScores, OracleTimestampData, StressResult
from .oracle_freshness import score_oracle
from .stress import market_utilization


def clamp_score(value: float) -> float:
    return min(max(value, 0.0), 100.0)


def score_utilization(utilization: float, target: float) -> float:
    """Asymmetric curve around the IRM target.

    At or below target the score only drifts from 100 to 90 as utilization
    approaches zero. Above target it falls linearly to 0 at full utilization.
    """
    if utilization <= target:
        if target <= 0:
            return 100.0
        return clamp_score(
            100 - UTILIZATION_UNDERSHOOT_PENALTY * (target - utilization) / target
        )
    if target >= 1:
        return 0.0
    return clamp_score(100 * (1 - (utilization - target) / (1 - target)))


def score_headroom(headroom_ratio: float | None) -> float:
    """Score post-shock headroom relative to outstanding borrow.

    No borrow (ratio None) is fully safe. A ratio of 25% or more scores 100,
    0-25% scores 70-100, and underwater positions fall from 70 to 0 at -50%.
    """
    if headroom_ratio is None or headroom_ratio >= HEADROOM_COMFORT_RATIO:
        return 100.0
    if headroom_ratio >= 0:
        return HEADROOM_SOLVENT_FLOOR + (
            100 - HEADROOM_SOLVENT_FLOOR
        ) * headroom_ratio / HEADROOM_COMFORT_RATIO
    return clamp_score(
        HEADROOM_SOLVENT_FLOOR * (1 + headroom_ratio / HEADROOM_UNDERWATER_RATIO)
    )


def score_coverage(coverage_ratio: float | None) -> float:
    """Coverage of liquidatable borrow by idle liquidity; None means nothing to cover."""
    if coverage_ratio is None:
        return 100.0
    return clamp_score(min(coverage_ratio, 1.0) * 100)


def grade_for_score(score: float) -> Grade:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return Grade(grade)
    return Grade.F


def apply_bad_debt_override(grade: Grade, realized_bad_debt_usd: float) -> Grade:
    if realized_bad_debt_usd > BAD_DEBT_OVERRIDE_USD:
        return Grade.F
    return grade


def score_market(
    market: Market,
    stress: StressResult,
    oracle_data: OracleTimestampData | None,
    target_utilization: float,
) -> MarketScores:
    """Score a non-idle market from its resolved inputs.

    The composite is the plain mean of the four component scores. Realized
    bad debt above $1 forces an F but leaves the composite value untouched.
    """
    oracle = score_oracle(oracle_data)
    utilization = score_utilization(market_utilization(market), target_utilization)
    headroom = score_headroom(stress.headroom_ratio)
    coverage = score_coverage(stress.coverage_ratio)

    composite = (oracle + utilization + headroom + coverage) / 4
    grade = apply_bad_debt_override(
        grade_for_score(composite), market.realized_bad_debt_usd
    )
    return MarketScores(
        oracle_score=oracle,
        utilization_score=utilization,
        liquidation_headroom_score=headroom,
        coverage_ratio_score=coverage,
        market_risk_score=composite,
        grade=grade,
        realized_bad_debt_usd=market.realized_bad_debt_usd,
    )
