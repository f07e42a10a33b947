"""Curator ratings over the market listing."""

from __future__ import annotations

from ..domain import CuratorRating
from ..errors import MarketNotFoundError
from ..processors.curator import rate_market, sort_ratings
from ..processors.normalizer import normalize_market
from .context import PipelineContext


def _matches(payload: dict, market_id: str) -> bool:
    wanted = market_id.lower()
    return any(
        isinstance(payload.get(key), str) and payload[key].lower() == wanted
        for key in ("id", "uniqueKey")
    )


async def rate_markets(
    ctx: PipelineContext,
    *,
    limit: int | None = None,
    market_id: str | None = None,
) -> list[CuratorRating]:
    """Rate markets, best first, or a single market when `market_id` is given.

    Args:
        ctx: Pipeline context
        limit: Number of markets to request from the listing
        market_id: Restrict to the market whose id or unique key matches

    Raises:
        MarketNotFoundError: If `market_id` matches nothing upstream
    """
    log = ctx.state.logger
    s = ctx.state.settings
    payloads = await ctx.client.fetch_markets(limit or s.market_limit)
    log.info("Fetched %d markets for rating", len(payloads))

    if market_id is not None:
        payloads = [p for p in payloads if _matches(p, market_id)]
        if not payloads:
            single = await ctx.client.fetch_market(market_id)
            if single is None:
                raise MarketNotFoundError(market_id)
            payloads = [single]

    ratings: list[CuratorRating] = []
    for payload in payloads:
        try:
            market = normalize_market(payload)
        except ValueError as e:
            log.warning("Skipping malformed market payload: %s", e)
            continue
        ratings.append(
            rate_market(market, ctx.config, ctx.benchmark_for(market.loan_asset.symbol))
        )
    return sort_ratings(ratings)
