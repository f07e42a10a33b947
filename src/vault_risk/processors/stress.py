"""Price-shock stress test: liquidation headroom and liquidity coverage."""

from __future__ import annotations

from ..constants import CORRELATED_ASSET_GROUPS, CORRELATED_SHOCK, UNCORRELATED_SHOCK
from ..domain import (
    AssetInfo,
    DerivedMetrics,
    Market,
    OracleTimestampData,
    StressResult,
)


def _symbol(asset: AssetInfo | None) -> str | None:
    if asset is None or not asset.symbol:
        return None
    return asset.symbol.upper()


def is_correlated_pair(loan: AssetInfo | None, collateral: AssetInfo | None) -> bool:
    """True when loan and collateral are the same asset or close derivatives.

    Same address, same symbol, or both symbols in one correlated group
    (ETH variants, BTC wrappers, a stable and its bridged variants).
    """
    if loan is None or collateral is None:
        return False
    if loan.address and collateral.address:
        if loan.address.lower() == collateral.address.lower():
            return True

    loan_symbol, collateral_symbol = _symbol(loan), _symbol(collateral)
    if loan_symbol is None or collateral_symbol is None:
        return False
    if loan_symbol == collateral_symbol:
        return True
    return any(
        loan_symbol in group and collateral_symbol in group
        for group in CORRELATED_ASSET_GROUPS
    )


def select_price_shock(market: Market) -> float:
    if is_correlated_pair(market.loan_asset, market.collateral_asset):
        return CORRELATED_SHOCK
    return UNCORRELATED_SHOCK


def shocked_borrow_capacity(collateral_usd: float, shock: float, lltv: float) -> float:
    """Borrow the collateral can still back after a `shock` price drop."""
    return collateral_usd * (1 - shock) * lltv


def liquidatable_borrow(
    borrow_usd: float, collateral_usd: float, shock: float, lltv: float
) -> float:
    return max(0.0, borrow_usd - shocked_borrow_capacity(collateral_usd, shock, lltv))


def compute_stress(market: Market, shock: float | None = None) -> StressResult:
    """Run the stress test for one market.

    Args:
        market: Normalized market; a missing LLTV is treated as 0
        shock: Price shock to apply; selected from the asset pair when omitted

    Returns:
        StressResult with `coverage_ratio` None when nothing is liquidatable
    """
    if shock is None:
        shock = select_price_shock(market)
    lltv = market.lltv or 0.0
    state = market.state

    headroom = shocked_borrow_capacity(state.collateral_usd, shock, lltv) - state.borrow_usd
    headroom_ratio = headroom / state.borrow_usd if state.borrow_usd > 0 else None

    available = max(0.0, state.supply_usd - state.borrow_usd)
    liquidatable = liquidatable_borrow(
        state.borrow_usd, state.collateral_usd, shock, lltv
    )
    coverage = available / liquidatable if liquidatable > 0 else None

    return StressResult(
        price_shock=shock,
        lltv=lltv,
        headroom_usd=headroom,
        headroom_ratio=headroom_ratio,
        available_liquidity_usd=available,
        liquidatable_borrow_usd=liquidatable,
        coverage_ratio=coverage,
    )


def market_utilization(market: Market) -> float:
    """Reported utilization, else borrow/supply, else 0."""
    if market.state.utilization is not None:
        return market.state.utilization
    if market.state.supply_usd > 0:
        return min(market.state.borrow_usd / market.state.supply_usd, 1.0)
    return 0.0


def _pct(value: float | None) -> float | None:
    return value * 100 if value is not None else None


def derive_metrics(
    market: Market,
    stress: StressResult,
    oracle_data: OracleTimestampData | None,
) -> DerivedMetrics:
    age = oracle_data.age_seconds if oracle_data else None
    return DerivedMetrics(
        lltv_pct=_pct(market.lltv),
        price_shock_pct=stress.price_shock * 100,
        headroom_usd=stress.headroom_usd,
        headroom_ratio_pct=_pct(stress.headroom_ratio),
        utilization_pct=market_utilization(market) * 100,
        available_liquidity_usd=stress.available_liquidity_usd,
        liquidatable_borrow_usd=stress.liquidatable_borrow_usd,
        coverage_ratio=stress.coverage_ratio,
        oracle_age_hours=age / 3600 if age is not None else None,
        oracle_age_days=age / 86400 if age is not None else None,
        supply_apy_pct=_pct(market.state.supply_apy),
        borrow_apy_pct=_pct(market.state.borrow_apy),
    )
