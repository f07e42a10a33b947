import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from vault_risk.pipeline import run as pipeline_run
from vault_risk.settings import RiskSettings
from vault_risk.state import AppState


def _state(**settings_kwargs) -> AppState:
    settings = RiskSettings(rpc_url="https://rpc.example", **settings_kwargs)
    return AppState(settings=settings, logger=logging.getLogger("test"))


@pytest.fixture
def fake_context(monkeypatch):
    ctx = MagicMock()
    ctx.close = AsyncMock()
    factory = MagicMock()
    factory.create.return_value = ctx
    monkeypatch.setattr(pipeline_run, "PipelineContext", factory)
    return factory, ctx


@pytest.mark.asyncio
async def test_run_v1_vault_completes_within_timeout(monkeypatch, fake_context):
    factory, ctx = fake_context
    calls: list[str] = []

    async def fast_score(_ctx, address):
        calls.append(address)
        await asyncio.sleep(0.01)
        return "risk"

    monkeypatch.setattr(pipeline_run, "score_v1_vault", fast_score)
    state = _state(global_timeout_seconds=0.5)

    result = await pipeline_run.run_v1_vault(
        state, "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913", {"minTvlUsd": 1}
    )

    assert result == "risk"
    assert calls == ["0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"]
    factory.create.assert_called_once_with(state, {"minTvlUsd": 1}, None)
    ctx.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_raises_timeout_and_still_closes(monkeypatch, fake_context):
    _, ctx = fake_context

    async def slow_score(_ctx, _address):
        await asyncio.sleep(1)

    monkeypatch.setattr(pipeline_run, "score_v2_vault", slow_score)
    state = _state(global_timeout_seconds=0.05)

    with pytest.raises(asyncio.TimeoutError, match="global_timeout_seconds"):
        await pipeline_run.run_v2_vault(state, "0xV")

    ctx.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_disabled_global_timeout(monkeypatch, fake_context):
    async def score(_ctx, unique_key):
        return unique_key

    monkeypatch.setattr(pipeline_run, "score_single_market", score)
    state = _state(global_timeout_seconds=None)

    assert await pipeline_run.run_market(state, "0xkey") == "0xkey"


@pytest.mark.asyncio
async def test_run_ratings_passes_benchmarks(monkeypatch, fake_context):
    factory, _ = fake_context
    seen = {}

    async def rate(_ctx, *, limit, market_id):
        seen.update(limit=limit, market_id=market_id)
        return []

    monkeypatch.setattr(pipeline_run, "rate_markets", rate)
    state = _state()

    await pipeline_run.run_ratings(
        state, limit=5, market_id="0xm", benchmark_rates={"USDC": 0.04}
    )

    assert seen == {"limit": 5, "market_id": "0xm"}
    factory.create.assert_called_once_with(state, None, {"USDC": 0.04})


@pytest.mark.asyncio
async def test_errors_propagate_after_close(monkeypatch, fake_context):
    _, ctx = fake_context

    async def boom(_ctx, _address):
        raise RuntimeError("scoring failed")

    monkeypatch.setattr(pipeline_run, "score_v1_vault", boom)

    with pytest.raises(RuntimeError, match="scoring failed"):
        await pipeline_run.run_v1_vault(_state(), "0xV")

    ctx.close.assert_awaited_once()


def test_canonical_address():
    assert (
        pipeline_run.canonical_address("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913")
        == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    )
    assert pipeline_run.canonical_address("0xABC") == "0xabc"
