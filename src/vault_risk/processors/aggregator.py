"""Allocation-weighted aggregation across the vault -> adapter -> market graph."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from ..constants import IDLE_ALLOCATION_EPSILON_USD, UNKNOWN_SYMBOL
from ..domain import (
    Adapter,
    AdapterKind,
    AdapterRisk,
    AggregateRisk,
    Grade,
    Market,
    MarketAllocation,
    MarketRiskRecord,
    OracleTimestampData,
    ScoreStatus,
)
from .scoring import grade_for_score, score_market
from .stress import compute_stress, derive_metrics


def is_structurally_idle(market: Market) -> bool:
    """The protocol's idle market has no collateral asset and no LLTV."""
    collateral = market.collateral_asset
    if collateral is None or not collateral.symbol:
        return True
    if collateral.symbol == UNKNOWN_SYMBOL:
        return True
    return market.lltv is None


def is_market_idle(leg: MarketAllocation) -> bool:
    """Idle: the idle market itself, or a dust allocation into an empty market."""
    if is_structurally_idle(leg.market):
        return True
    return (
        leg.allocation_usd < IDLE_ALLOCATION_EPSILON_USD
        and leg.market.state.supply_usd < IDLE_ALLOCATION_EPSILON_USD
    )


def idle_record(leg: MarketAllocation) -> MarketRiskRecord:
    return MarketRiskRecord(
        market=leg.market,
        allocation_usd=leg.allocation_usd,
        allocation_assets=leg.allocation_assets,
        status=ScoreStatus.IDLE,
    )


def build_market_record(
    leg: MarketAllocation,
    oracle_data: OracleTimestampData | None,
    target_utilization: float,
) -> MarketRiskRecord:
    """Score one allocation leg, or mark it idle without a score."""
    if is_market_idle(leg):
        return idle_record(leg)

    stress = compute_stress(leg.market)
    return MarketRiskRecord(
        market=leg.market,
        allocation_usd=leg.allocation_usd,
        allocation_assets=leg.allocation_assets,
        status=ScoreStatus.SCORED,
        scores=score_market(leg.market, stress, oracle_data, target_utilization),
        oracle_data=oracle_data,
        target_utilization=target_utilization,
        stress=stress,
        derived=derive_metrics(leg.market, stress, oracle_data),
    )


def weighted_score(pairs: Iterable[tuple[float, float]]) -> tuple[float, Grade]:
    """Weighted mean of (score, weight) pairs with positive weight.

    Returns (0, F) when no weight remains; that is the defined floor.
    """
    total = 0.0
    weight_sum = 0.0
    for score, weight in pairs:
        if weight > 0:
            total += score * weight
            weight_sum += weight
    if weight_sum <= 0:
        return 0.0, Grade.F
    score = total / weight_sum
    return score, grade_for_score(score)


def sort_records(records: Iterable[MarketRiskRecord]) -> tuple[MarketRiskRecord, ...]:
    """Largest allocation first; idle markets last among equal allocations."""
    return tuple(sorted(records, key=lambda r: (-r.allocation_usd, r.is_idle)))


def aggregate_markets(records: Sequence[MarketRiskRecord]) -> AggregateRisk:
    score, grade = weighted_score(
        (record.scores.market_risk_score, record.allocation_usd)
        for record in records
        if record.status is ScoreStatus.SCORED and record.scores is not None
    )
    return AggregateRisk(weighted_score=score, grade=grade, markets=sort_records(records))


def adapter_legs(adapter: Adapter) -> tuple[MarketAllocation, ...]:
    """Market legs reachable through an adapter, one level down for vault adapters."""
    if adapter.kind is AdapterKind.VAULT:
        return adapter.vault.legs if adapter.vault is not None else ()
    if adapter.kind is AdapterKind.MARKETS:
        return adapter.legs
    return ()


def _adapter_label(adapter: Adapter) -> str:
    if adapter.kind is AdapterKind.VAULT:
        return adapter.vault_name or "MetaMorpho Adapter"
    if adapter.kind is AdapterKind.MARKETS:
        return "Morpho Market Adapter"
    return f"Unsupported adapter ({adapter.type_name or 'unknown'})"


def aggregate_adapter(
    adapter: Adapter, records: Sequence[MarketRiskRecord]
) -> AdapterRisk:
    """Aggregate one V2 adapter from the records of its `adapter_legs`.

    Vault adapters whose nested vault could not be fetched and unsupported
    adapters are returned unresolved, with no score.
    """
    base = dict(
        address=adapter.address,
        kind=adapter.kind,
        label=_adapter_label(adapter),
        allocation_usd=adapter.allocation_usd,
        allocation_assets=adapter.allocation_assets,
    )

    if adapter.kind is AdapterKind.VAULT:
        if adapter.vault is None:
            return AdapterRisk(
                **base,
                risk_score=None,
                grade=None,
                vault_address=adapter.vault_address,
                resolved=False,
                error=adapter.error or "Underlying vault could not be resolved",
            )
        aggregate = aggregate_markets(records)
        return AdapterRisk(
            **base,
            risk_score=aggregate.weighted_score,
            grade=aggregate.grade,
            markets=aggregate.markets,
            vault_address=adapter.vault_address,
            skipped_legs=adapter.vault.skipped,
        )

    if adapter.kind is AdapterKind.MARKETS:
        aggregate = aggregate_markets(records)
        return AdapterRisk(
            **base,
            risk_score=aggregate.weighted_score,
            grade=aggregate.grade,
            markets=aggregate.markets,
            skipped_legs=adapter.skipped,
        )

    return AdapterRisk(
        **base,
        risk_score=None,
        grade=None,
        resolved=False,
        error="Unsupported adapter type",
    )


def has_scored_market(adapter_risk: AdapterRisk) -> bool:
    return any(record.status is ScoreStatus.SCORED for record in adapter_risk.markets)


def aggregate_vault(adapter_risks: Sequence[AdapterRisk]) -> tuple[float, Grade]:
    """Roll adapter scores up to the vault, weighted by adapter allocation.

    Unresolved adapters and adapters with no scored market are excluded, the
    same way idle markets are excluded one level down.
    """
    return weighted_score(
        (risk.risk_score, risk.allocation_usd)
        for risk in adapter_risks
        if risk.resolved and risk.risk_score is not None and has_scored_market(risk)
    )


def sort_adapters(adapter_risks: Iterable[AdapterRisk]) -> tuple[AdapterRisk, ...]:
    return tuple(
        sorted(adapter_risks, key=lambda a: (-a.allocation_usd, not a.resolved))
    )
