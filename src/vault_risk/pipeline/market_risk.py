"""Per-market risk: concurrent oracle/IRM lookups, then pure scoring."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from ..domain import (
    UNRESOLVED_ORACLE,
    Market,
    MarketAllocation,
    MarketRiskRecord,
    OracleRef,
    OracleTimestampData,
)
from ..errors import MarketNotFoundError
from ..processors.aggregator import build_market_record, idle_record, is_market_idle
from ..processors.irm_target import resolve_target_utilization
from ..processors.normalizer import normalize_market
from .context import PipelineContext


def _key(address: str | None) -> str:
    return (address or "").lower()


async def lookup_oracle(ctx: PipelineContext, oracle: OracleRef) -> OracleTimestampData:
    """Oracle freshness, shared by every market using the same oracle and feed."""
    if oracle.address is None:
        return UNRESOLVED_ORACLE
    key = (_key(oracle.address), oracle.base_feed_address and _key(oracle.base_feed_address))
    task = ctx.oracle_lookups.get(key)
    if task is None:
        task = asyncio.ensure_future(
            ctx.oracle_reader.read_timestamp(oracle.address, oracle.base_feed_address)
        )
        ctx.oracle_lookups[key] = task
    return await task


async def lookup_target_utilization(
    ctx: PipelineContext, irm_address: str | None
) -> float | None:
    if irm_address is None:
        return None
    key = _key(irm_address)
    task = ctx.irm_lookups.get(key)
    if task is None:
        task = asyncio.ensure_future(ctx.irm_reader.read_target_utilization(irm_address))
        ctx.irm_lookups[key] = task
    return await task


async def resolve_market_inputs(
    ctx: PipelineContext, market: Market
) -> tuple[OracleTimestampData, float]:
    """Fan out the oracle and IRM lookups for one market and join them.

    A failing lookup degrades to the opaque oracle tier or the fallback
    target; it never fails the market.
    """
    log = ctx.state.logger
    oracle_result, irm_result = await asyncio.gather(
        lookup_oracle(ctx, market.oracle),
        lookup_target_utilization(ctx, market.irm_address),
        return_exceptions=True,
    )

    if isinstance(oracle_result, BaseException):
        log.warning("Oracle lookup failed for market %s: %s", market.unique_key, oracle_result)
        oracle_result = UNRESOLVED_ORACLE
    if isinstance(irm_result, BaseException):
        log.warning("IRM lookup failed for market %s: %s", market.unique_key, irm_result)
        irm_result = None

    if irm_result is None:
        log.debug(
            "Using fallback target utilization %.2f for market %s",
            ctx.config.fallback_target_utilization,
            market.unique_key,
        )
    target = resolve_target_utilization(
        irm_result, ctx.config.fallback_target_utilization
    )
    return oracle_result, target


async def score_leg(ctx: PipelineContext, leg: MarketAllocation) -> MarketRiskRecord:
    if is_market_idle(leg):
        return idle_record(leg)
    oracle_data, target = await resolve_market_inputs(ctx, leg.market)
    return build_market_record(leg, oracle_data, target)


async def score_legs(
    ctx: PipelineContext, legs: Sequence[MarketAllocation]
) -> list[MarketRiskRecord]:
    """Score every leg concurrently; order of the result matches `legs`."""
    return list(await asyncio.gather(*(score_leg(ctx, leg) for leg in legs)))


async def score_single_market(ctx: PipelineContext, unique_key: str) -> MarketRiskRecord:
    """Score a market outside any vault, weighting it by its own supply.

    Raises:
        MarketNotFoundError: If the data API has no market with this key
    """
    payload = await ctx.client.fetch_market(unique_key)
    if payload is None:
        raise MarketNotFoundError(unique_key)
    market = normalize_market(payload)
    leg = MarketAllocation(market=market, allocation_usd=market.state.supply_usd)
    return await score_leg(ctx, leg)
