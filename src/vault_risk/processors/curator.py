"""Curator rating: a market-level composite independent of the allocation graph.

Five components, each in [0, 1]: utilization-ceiling compliance, supply-rate
alignment to a benchmark, stress insolvency exposure as a share of TVL,
withdrawal liquidity and post-stress liquidation capacity. Markets below the
minimum TVL get no rating at all rather than a low one.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from ..config import ScoringConfig, clamp01
from ..constants import (
    CURATOR_TIERS,
    HIGH_RISK_TIER,
    HUGE_MARKET_TOLERANCE,
    HUGE_MARKET_TVL_USD,
    INSUFFICIENT_TVL_TIER,
    LARGE_MARKET_TOLERANCE,
    LARGE_MARKET_TVL_USD,
    UTILIZATION_SAFE_MARGIN,
    VERY_LARGE_MARKET_TVL_USD,
)
from ..domain import (
    CuratorComponents,
    CuratorMetrics,
    CuratorRating,
    Market,
    ScoreStatus,
)
from .stress import liquidatable_borrow, market_utilization

logger = logging.getLogger(__name__)


def market_tvl(market: Market) -> float:
    """Reported size when available, else supplied plus borrowed."""
    if market.state.size_usd > 0:
        return market.state.size_usd
    return market.state.supply_usd + market.state.borrow_usd


def score_utilization_ceiling(utilization: float, config: ScoringConfig) -> float:
    safe = clamp01(config.utilization_ceiling) * UTILIZATION_SAFE_MARGIN
    if utilization <= safe:
        return 1.0
    span = config.max_utilization_beyond - safe
    if span <= 0:
        return 0.0
    return clamp01(1 - (utilization - safe) / span)


def score_rate_alignment(
    supply_rate: float, benchmark: float, config: ScoringConfig
) -> float:
    """Score how closely the supply rate tracks the benchmark.

    Within eps the score stays between 1 and 0.8, between eps and 2*eps it
    drops to 0.2, and beyond that it decays exponentially. Yields above
    benchmark + buffer take an extra exponential penalty.
    """
    eps = config.rate_alignment_eps
    diff = abs(supply_rate - benchmark)
    if eps <= 0:
        score = 1.0 if diff == 0 else 0.0
    elif diff <= eps:
        score = 1 - 0.2 * diff / eps
    elif diff <= 2 * eps:
        score = 0.8 - 0.6 * (diff - eps) / eps
    else:
        score = 0.2 * math.exp(-(diff - 2 * eps) / eps)

    high_yield_floor = benchmark + config.rate_alignment_high_yield_buffer
    if supply_rate > high_yield_floor and config.rate_alignment_high_yield_eps > 0:
        excess = supply_rate - high_yield_floor
        score *= math.exp(-excess / config.rate_alignment_high_yield_eps)
    return clamp01(score)


def insolvency_tolerance(tvl: float, base_tolerance: float) -> float:
    """Insolvency tolerance as a fraction of TVL, loosened for large markets.

    Below $50M the configured tolerance applies. From $50M it rises on a
    square-root ramp to 20% at $500M, then linearly to 35% at $2B.
    """
    base = clamp01(base_tolerance)
    if tvl < LARGE_MARKET_TVL_USD:
        return base
    if tvl < VERY_LARGE_MARKET_TVL_USD:
        progress = (tvl - LARGE_MARKET_TVL_USD) / (
            VERY_LARGE_MARKET_TVL_USD - LARGE_MARKET_TVL_USD
        )
        return max(base, base + (LARGE_MARKET_TOLERANCE - base) * math.sqrt(progress))
    progress = min(
        1.0,
        (tvl - VERY_LARGE_MARKET_TVL_USD)
        / (HUGE_MARKET_TVL_USD - VERY_LARGE_MARKET_TVL_USD),
    )
    scaled = LARGE_MARKET_TOLERANCE + (
        HUGE_MARKET_TOLERANCE - LARGE_MARKET_TOLERANCE
    ) * progress
    return max(base, scaled)


def score_stress_exposure(pct_of_tvl: float, tvl: float, tolerance: float) -> float:
    if pct_of_tvl <= 0:
        return 1.0
    if tolerance <= 0:
        return 0.0
    if tvl < LARGE_MARKET_TVL_USD:
        return clamp01(1 - pct_of_tvl / tolerance)

    # Large markets: exposure up to 80% of tolerance costs at most 10%
    threshold = tolerance * 0.8
    if pct_of_tvl <= threshold:
        return clamp01(1 - 0.1 * pct_of_tvl / threshold)
    excess = (pct_of_tvl - threshold) / (tolerance - threshold)
    return clamp01(0.9 - 0.9 * excess**1.5)


def score_withdrawal_liquidity(available: float, required: float) -> float:
    if available >= required:
        return 1.0
    return clamp01(available / max(required, 1.0))


def score_liquidation_capacity(capacity: float, insolvency: float, tvl: float) -> float:
    if capacity >= insolvency:
        return 1.0
    coverage = capacity / max(insolvency, 1.0)
    if tvl < LARGE_MARKET_TVL_USD:
        return clamp01(coverage)
    if coverage >= 0.5:
        return clamp01(0.6 + (coverage - 0.5) * 0.8)
    if coverage >= 0.3:
        return clamp01(0.3 + (coverage - 0.3) * 1.5)
    return clamp01(coverage)


def tier_for_rating(rating: int | None) -> str:
    if rating is None:
        return INSUFFICIENT_TVL_TIER
    for threshold, tier in CURATOR_TIERS:
        if rating >= threshold:
            return tier
    return HIGH_RISK_TIER


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def rate_market(
    market: Market,
    config: ScoringConfig,
    benchmark_rate: float | None = None,
) -> CuratorRating:
    """Compute the curator rating for one market.

    Args:
        market: Normalized market record
        config: Effective scoring configuration for this request
        benchmark_rate: Benchmark supply rate; the configured fallback when None

    Returns:
        CuratorRating whose `rating` is None when TVL is below `min_tvl_usd`
    """
    state = market.state
    tvl = market_tvl(market)
    utilization = market_utilization(market)
    supply_rate = state.supply_apy or 0.0
    benchmark = (
        benchmark_rate if benchmark_rate is not None else config.fallback_benchmark_rate
    )

    collateral = state.collateral_usd if state.collateral_usd > 0 else state.supply_usd
    lltv = market.lltv if state.collateral_usd > 0 and market.lltv else 1.0
    insolvency = liquidatable_borrow(
        state.borrow_usd, collateral, clamp01(config.price_stress_pct), lltv
    )
    pct_of_tvl = insolvency / tvl if tvl > 0 else 1.0
    tolerance = insolvency_tolerance(tvl, config.insolvency_tolerance_pct_tvl)

    available = state.liquidity_usd
    required = clamp01(config.withdrawal_liquidity_min_pct) * tvl
    capacity = available * (1 - clamp01(config.liquidity_stress_pct))

    components = CuratorComponents(
        utilization=score_utilization_ceiling(utilization, config),
        rate_alignment=score_rate_alignment(supply_rate, benchmark, config),
        stress_exposure=score_stress_exposure(pct_of_tvl, tvl, tolerance),
        withdrawal_liquidity=score_withdrawal_liquidity(available, required),
        liquidation_capacity=score_liquidation_capacity(capacity, insolvency, tvl),
    )
    weights = config.weights

    insufficient = tvl < config.min_tvl_usd
    if insufficient:
        logger.debug(
            "Market %s has insufficient TVL for rating (tvl=%.2f, min=%.2f)",
            market.unique_key,
            tvl,
            config.min_tvl_usd,
        )
        rating = None
    else:
        aggregate = (
            components.utilization * weights.utilization
            + components.rate_alignment * weights.rate_alignment
            + components.stress_exposure * weights.stress_exposure
            + components.withdrawal_liquidity * weights.withdrawal_liquidity
            + components.liquidation_capacity * weights.liquidation_capacity
        )
        rating = min(max(_round_half_up(aggregate * 100), 0), 100)

    return CuratorRating(
        market_id=market.id or market.unique_key,
        symbol=market.loan_asset.symbol or "UNKNOWN",
        collateral_symbol=(
            market.collateral_asset.symbol if market.collateral_asset else None
        ),
        status=ScoreStatus.INSUFFICIENT_TVL if insufficient else ScoreStatus.SCORED,
        rating=rating,
        tier=tier_for_rating(rating),
        components=components,
        metrics=CuratorMetrics(
            tvl_usd=tvl,
            utilization=utilization,
            supply_rate=supply_rate,
            benchmark_rate=benchmark,
            available_liquidity_usd=available,
            potential_insolvency_usd=insolvency,
            insolvency_pct_of_tvl=pct_of_tvl,
            required_liquidity_usd=required,
            liquidation_capacity_usd=capacity,
        ),
        weights=weights.model_dump(),
        raw=market,
    )


def sort_ratings(ratings: Iterable[CuratorRating]) -> list[CuratorRating]:
    """Highest rating first; unrated (insufficient TVL) markets last."""
    return sorted(
        ratings,
        key=lambda r: (r.rating is None, -(r.rating or 0)),
    )


def group_by_symbol(ratings: Iterable[CuratorRating]) -> dict[str, list[CuratorRating]]:
    grouped: dict[str, list[CuratorRating]] = {}
    for rating in ratings:
        grouped.setdefault(rating.symbol.upper(), []).append(rating)
    return grouped
