from __future__ import annotations

from .aggregator import (
    aggregate_adapter,
    aggregate_markets,
    aggregate_vault,
    build_market_record,
    is_market_idle,
)
from .curator import rate_market, sort_ratings
from .scoring import grade_for_score, score_market
from .stress import compute_stress, select_price_shock

__all__ = [
    "aggregate_adapter",
    "aggregate_markets",
    "aggregate_vault",
    "build_market_record",
    "compute_stress",
    "grade_for_score",
    "is_market_idle",
    "rate_market",
    "score_market",
    "select_price_shock",
    "sort_ratings",
]
