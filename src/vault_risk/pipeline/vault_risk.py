"""Vault risk for V1 (vault -> market) and V2 (vault -> adapter -> ...) structures."""

from __future__ import annotations

import asyncio

from ..domain import (
    Adapter,
    AdapterKind,
    AdapterRisk,
    V1VaultRisk,
    VaultAdapter,
    VaultRisk,
)
from ..errors import MorphoApiError, VaultNotFoundError
from ..processors.aggregator import (
    adapter_legs,
    aggregate_adapter,
    aggregate_markets,
    aggregate_vault,
    sort_adapters,
)
from ..processors.normalizer import attach_vault, normalize_v1_vault, normalize_v2_vault
from .context import PipelineContext
from .market_risk import score_legs


async def score_v1_vault(ctx: PipelineContext, address: str) -> V1VaultRisk:
    """Score a V1 vault over its direct market allocations.

    Raises:
        VaultNotFoundError: If the data API does not know the vault
    """
    log = ctx.state.logger
    payload = await ctx.client.fetch_v1_vault(address)
    if payload is None:
        raise VaultNotFoundError(address)

    vault = normalize_v1_vault(payload)
    log.info("Scoring V1 vault %s across %d markets", address, len(vault.legs))

    if vault.skipped:
        log.warning(
            "V1 vault %s has %d allocation entries that could not be normalized",
            address,
            len(vault.skipped),
        )

    records = await score_legs(ctx, vault.legs)
    aggregate = aggregate_markets(records)
    return V1VaultRisk(
        vault_address=vault.address or address,
        name=vault.name,
        liquidity_usd=vault.liquidity_usd,
        risk_score=aggregate.weighted_score,
        grade=aggregate.grade,
        markets=aggregate.markets,
        skipped_legs=vault.skipped,
    )


async def resolve_vault_adapter(
    ctx: PipelineContext, adapter: VaultAdapter
) -> VaultAdapter:
    """Fetch the V1 vault behind a vault adapter, marking it unresolved on failure."""
    log = ctx.state.logger
    if adapter.vault_address is None:
        return attach_vault(adapter, None, "Adapter reports no underlying vault")
    try:
        payload = await ctx.client.fetch_v1_vault(adapter.vault_address)
    except MorphoApiError as e:
        log.warning(
            "Could not fetch vault %s behind adapter %s: %s",
            adapter.vault_address,
            adapter.address,
            e,
        )
        return attach_vault(adapter, None, str(e))
    if payload is None:
        log.warning("Vault %s behind adapter %s not found", adapter.vault_address, adapter.address)
        return attach_vault(
            adapter, None, f"Vault not found: {adapter.vault_address}"
        )
    return attach_vault(adapter, normalize_v1_vault(payload))


async def score_adapter(ctx: PipelineContext, adapter: Adapter) -> AdapterRisk:
    if adapter.kind is AdapterKind.VAULT:
        adapter = await resolve_vault_adapter(ctx, adapter)
    records = await score_legs(ctx, adapter_legs(adapter))
    return aggregate_adapter(adapter, records)


async def score_v2_vault(ctx: PipelineContext, address: str) -> VaultRisk:
    """Score a V2 vault: each adapter first, then the allocation-weighted roll-up.

    Raises:
        VaultNotFoundError: If the data API does not know the vault
    """
    log = ctx.state.logger
    payload = await ctx.client.fetch_v2_vault(address)
    if payload is None:
        raise VaultNotFoundError(address)

    vault = normalize_v2_vault(payload)
    log.info("Scoring V2 vault %s across %d adapters", address, len(vault.adapters))

    adapter_risks = await asyncio.gather(
        *(score_adapter(ctx, adapter) for adapter in vault.adapters)
    )
    unresolved = [risk.address for risk in adapter_risks if not risk.resolved]
    if unresolved:
        log.warning(
            "%d adapter(s) could not be scored: %s", len(unresolved), ", ".join(unresolved)
        )

    score, grade = aggregate_vault(adapter_risks)
    return VaultRisk(
        vault_address=vault.address or address,
        total_assets_usd=vault.total_assets_usd,
        liquidity_usd=vault.liquidity_usd,
        asset_symbol=vault.asset_symbol,
        risk_score=score,
        grade=grade,
        adapters=sort_adapters(adapter_risks),
    )
