"""High-level pipeline orchestration."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from web3 import Web3

from ..domain import CuratorRating, MarketRiskRecord, V1VaultRisk, VaultRisk
from ..state import AppState
from .context import PipelineContext
from .market_risk import score_single_market
from .ratings import rate_markets
from .vault_risk import score_v1_vault, score_v2_vault

T = TypeVar("T")


def canonical_address(address: str) -> str:
    try:
        return Web3.to_checksum_address(address)
    except ValueError:
        return address.lower()


async def _run_with_context(
    state: AppState,
    label: str,
    step: Callable[[PipelineContext], Awaitable[T]],
    overrides: Mapping[str, Any] | None = None,
    benchmark_rates: Mapping[str, float] | None = None,
) -> T:
    """Run one request under the global timeout and always release collaborators."""
    s = state.settings
    log = state.logger
    timeout_s = s.global_timeout_seconds

    ctx = PipelineContext.create(state, overrides, benchmark_rates)
    log.info("Starting %s", label, extra={"target": label})
    try:
        if timeout_s is None or timeout_s <= 0:
            result = await step(ctx)
        else:
            async with asyncio.timeout(timeout_s):
                result = await step(ctx)
    except TimeoutError as exc:
        log.error(
            "Risk pipeline timed out",
            extra={"target": label, "timeout_seconds": timeout_s},
        )
        raise TimeoutError(
            f"{label} exceeded global timeout {timeout_s}s\n N.B. This can be changed "
            "via `global_timeout_seconds`."
        ) from exc
    finally:
        await ctx.close()

    log.info("Completed %s", label)
    return result


async def run_v1_vault(
    state: AppState, address: str, overrides: Mapping[str, Any] | None = None
) -> V1VaultRisk:
    vault = canonical_address(address)
    return await _run_with_context(
        state, f"V1 vault {vault}", lambda ctx: score_v1_vault(ctx, vault), overrides
    )


async def run_v2_vault(
    state: AppState, address: str, overrides: Mapping[str, Any] | None = None
) -> VaultRisk:
    vault = canonical_address(address)
    return await _run_with_context(
        state, f"V2 vault {vault}", lambda ctx: score_v2_vault(ctx, vault), overrides
    )


async def run_market(
    state: AppState, unique_key: str, overrides: Mapping[str, Any] | None = None
) -> MarketRiskRecord:
    return await _run_with_context(
        state,
        f"market {unique_key}",
        lambda ctx: score_single_market(ctx, unique_key),
        overrides,
    )


async def run_ratings(
    state: AppState,
    *,
    limit: int | None = None,
    market_id: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    benchmark_rates: Mapping[str, float] | None = None,
) -> list[CuratorRating]:
    return await _run_with_context(
        state,
        "curator ratings",
        lambda ctx: rate_markets(ctx, limit=limit, market_id=market_id),
        overrides,
        benchmark_rates,
    )
