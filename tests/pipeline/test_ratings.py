from unittest.mock import AsyncMock, MagicMock

import pytest

from vault_risk.errors import MarketNotFoundError
from vault_risk.pipeline.ratings import rate_markets


@pytest.fixture
def listing(market_payload):
    return [
        market_payload("0xm1", supply_usd=1e6, borrow_usd=9e5, collateral_usd=1e6),
        market_payload("0xm2", supply_usd=1e7, collateral_usd=4e7, supply_apy=0.04),
        market_payload("0xm3", supply_usd=100, borrow_usd=0),
        {"loanAsset": {"symbol": "USDC"}},
    ]


@pytest.mark.asyncio
async def test_rates_listing_best_first(make_ctx, listing, state):
    client = MagicMock()
    client.fetch_markets = AsyncMock(return_value=listing)
    ctx = make_ctx(client=client)

    ratings = await rate_markets(ctx)

    assert [r.market_id for r in ratings] == ["id-0xm2", "id-0xm1", "id-0xm3"]
    assert ratings[-1].rating is None
    client.fetch_markets.assert_awaited_once_with(state.settings.market_limit)


@pytest.mark.asyncio
async def test_benchmark_per_loan_symbol(make_ctx, listing):
    client = MagicMock()
    client.fetch_markets = AsyncMock(return_value=listing)
    ctx = make_ctx(client=client)
    ctx.benchmark_rates = {"USDC": 0.04}

    ratings = await rate_markets(ctx, limit=10)

    best = ratings[0]
    assert best.metrics.benchmark_rate == 0.04
    assert best.components.rate_alignment == pytest.approx(1.0)
    client.fetch_markets.assert_awaited_once_with(10)


@pytest.mark.asyncio
async def test_market_id_filter_is_case_insensitive(make_ctx, listing):
    client = MagicMock()
    client.fetch_markets = AsyncMock(return_value=listing)
    client.fetch_market = AsyncMock()
    ctx = make_ctx(client=client)

    ratings = await rate_markets(ctx, market_id="ID-0XM2")
    by_key = await rate_markets(ctx, market_id="0xM1")

    assert [r.market_id for r in ratings] == ["id-0xm2"]
    assert [r.market_id for r in by_key] == ["id-0xm1"]
    client.fetch_market.assert_not_awaited()


@pytest.mark.asyncio
async def test_market_outside_listing_is_fetched_directly(make_ctx, listing, market_payload):
    client = MagicMock()
    client.fetch_markets = AsyncMock(return_value=listing)
    client.fetch_market = AsyncMock(return_value=market_payload("0xfar", supply_usd=5e6))
    ctx = make_ctx(client=client)

    ratings = await rate_markets(ctx, market_id="0xfar")

    assert [r.market_id for r in ratings] == ["id-0xfar"]
    client.fetch_market.assert_awaited_once_with("0xfar")


@pytest.mark.asyncio
async def test_unknown_market_id_raises(make_ctx, listing):
    client = MagicMock()
    client.fetch_markets = AsyncMock(return_value=listing)
    client.fetch_market = AsyncMock(return_value=None)
    ctx = make_ctx(client=client)

    with pytest.raises(MarketNotFoundError):
        await rate_markets(ctx, market_id="0xnowhere")
