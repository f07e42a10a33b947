"""Turn Morpho API payloads into uniform market, vault and adapter records.

The API returns markets in three shapes: V1 vault allocation entries, V2 adapter
positions and flat market listings. Everything downstream only sees `Market`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any

from ..constants import WAD, ZERO_ADDRESS
from ..domain import (
    Adapter,
    AssetInfo,
    Market,
    MarketAdapter,
    MarketAllocation,
    MarketState,
    OracleRef,
    SkippedLeg,
    UnsupportedAdapter,
    VaultAdapter,
    VaultAllocation,
    VaultV2Allocation,
)

logger = logging.getLogger(__name__)

VAULT_ADAPTER_TYPES = frozenset({"MetaMorphoAdapter"})
MARKET_ADAPTER_TYPES = frozenset({"MorphoMarketV1Adapter"})


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce an API number (int, float or numeric string) to a finite float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def to_optional_float(value: Any) -> float | None:
    if value is None:
        return None
    number = to_float(value, default=math.nan)
    return None if math.isnan(number) else number


def _nested(payload: dict[str, Any] | None, *keys: str) -> Any:
    current: Any = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def normalize_address(address: Any) -> str | None:
    """Empty and zero addresses become None."""
    if not isinstance(address, str) or not address:
        return None
    if address.lower() == ZERO_ADDRESS:
        return None
    return address


def normalize_lltv(raw: Any) -> float | None:
    """Normalize an LLTV to a fraction in [0, 1].

    The API reports LLTV as a 1e18-scaled integer (usually as a string), but
    cached or hand-written payloads may carry a fraction or a percentage.
    """
    value = to_optional_float(raw)
    if value is None or value <= 0:
        return None
    if value > 1_000_000:
        fraction = value / WAD
    elif value <= 1:
        fraction = value
    else:
        fraction = value / 100
    return min(fraction, 1.0)


def normalize_utilization(raw: Any, market_key: str) -> float | None:
    value = to_optional_float(raw)
    if value is None:
        return None
    if value < 0 or value > 1:
        logger.warning(
            "Utilization anomaly for market %s: %s outside [0, 1], clamping",
            market_key,
            value,
        )
        return min(max(value, 0.0), 1.0)
    return value


def normalize_asset(payload: Any) -> AssetInfo | None:
    if not isinstance(payload, dict):
        return None
    try:
        decimals = int(payload["decimals"])
    except (KeyError, TypeError, ValueError):
        decimals = None
    return AssetInfo(
        address=normalize_address(payload.get("address")),
        symbol=payload.get("symbol"),
        decimals=decimals,
    )


def normalize_oracle(payload: dict[str, Any]) -> OracleRef:
    oracle = payload.get("oracle") if isinstance(payload.get("oracle"), dict) else {}
    address = normalize_address(oracle.get("address")) or normalize_address(
        payload.get("oracleAddress")
    )
    return OracleRef(
        address=address,
        type=oracle.get("type"),
        base_feed_address=normalize_address(
            _nested(oracle, "data", "baseFeedOne", "address")
        ),
    )


def normalize_market(payload: dict[str, Any]) -> Market:
    """Build a `Market` from any of the API's market shapes.

    Raises:
        ValueError: If the payload carries neither a uniqueKey nor an id
    """
    unique_key = payload.get("uniqueKey") or payload.get("id")
    if not unique_key:
        raise ValueError("Market payload has neither uniqueKey nor id")

    state = payload.get("state") or {}
    supply_usd = max(to_float(state.get("supplyAssetsUsd")), 0.0)
    borrow_usd = max(to_float(state.get("borrowAssetsUsd")), 0.0)

    loan_asset = normalize_asset(payload.get("loanAsset")) or AssetInfo(
        address=None, symbol=None
    )
    return Market(
        unique_key=unique_key,
        id=payload.get("id"),
        loan_asset=loan_asset,
        collateral_asset=normalize_asset(payload.get("collateralAsset")),
        oracle=normalize_oracle(payload),
        irm_address=normalize_address(payload.get("irmAddress")),
        lltv=normalize_lltv(payload.get("lltv")),
        state=MarketState(
            supply_usd=supply_usd,
            borrow_usd=borrow_usd,
            collateral_usd=max(to_float(state.get("collateralAssetsUsd")), 0.0),
            liquidity_usd=max(to_float(state.get("liquidityAssetsUsd")), 0.0),
            size_usd=max(to_float(state.get("sizeUsd")), 0.0),
            utilization=normalize_utilization(state.get("utilization"), unique_key),
            supply_apy=to_optional_float(state.get("supplyApy")),
            borrow_apy=to_optional_float(state.get("borrowApy")),
        ),
        realized_bad_debt_usd=max(
            to_float(_nested(payload, "realizedBadDebt", "usd")), 0.0
        ),
    )


def normalize_allocation(entry: dict[str, Any]) -> MarketAllocation | None:
    """Normalize a V1 allocation entry or a V2 adapter position.

    V1 entries carry supplyAssets/supplyAssetsUsd at the top level, V2
    positions nest them under `state`.
    """
    market_payload = entry.get("market")
    if not isinstance(market_payload, dict):
        return None
    holder = entry.get("state") if isinstance(entry.get("state"), dict) else entry
    assets = holder.get("supplyAssets")
    return MarketAllocation(
        market=normalize_market(market_payload),
        allocation_usd=max(to_float(holder.get("supplyAssetsUsd")), 0.0),
        allocation_assets=str(assets) if assets is not None else None,
    )


def _skipped_leg(entry: Any, reason: str) -> SkippedLeg:
    holder = entry.get("state") if isinstance(entry, dict) else None
    if not isinstance(holder, dict):
        holder = entry if isinstance(entry, dict) else {}
    return SkippedLeg(
        allocation_usd=max(to_float(holder.get("supplyAssetsUsd")), 0.0), reason=reason
    )


def _allocations(
    entries: Any,
) -> tuple[tuple[MarketAllocation, ...], tuple[SkippedLeg, ...]]:
    """Normalize allocation entries; the ones that fail are returned as skipped legs."""
    if not isinstance(entries, list):
        return (), ()
    legs: list[MarketAllocation] = []
    skipped: list[SkippedLeg] = []
    for entry in entries:
        if not isinstance(entry, dict):
            skipped.append(_skipped_leg(entry, "Allocation entry is not an object"))
            continue
        try:
            leg = normalize_allocation(entry)
        except ValueError as e:
            logger.warning("Skipping malformed allocation entry: %s", e)
            skipped.append(_skipped_leg(entry, str(e)))
            continue
        if leg is None:
            skipped.append(_skipped_leg(entry, "Allocation entry has no market"))
            continue
        legs.append(leg)
    return tuple(legs), tuple(skipped)


def normalize_v1_vault(payload: dict[str, Any]) -> VaultAllocation:
    state = payload.get("state") or {}
    legs, skipped = _allocations(state.get("allocation"))
    return VaultAllocation(
        address=payload.get("address", ""),
        name=payload.get("name"),
        total_assets_usd=max(to_float(state.get("totalAssetsUsd")), 0.0),
        liquidity_usd=to_optional_float(_nested(payload, "liquidity", "usd")),
        legs=legs,
        skipped=skipped,
    )


def normalize_adapter(item: dict[str, Any]) -> Adapter:
    """Classify a V2 adapter by its GraphQL `__typename`."""
    type_name = item.get("__typename") or item.get("type")
    address = item.get("address", "")
    allocation_usd = max(to_float(item.get("assetsUsd")), 0.0)
    raw_assets = item.get("assets")
    allocation_assets = str(raw_assets) if raw_assets is not None else None

    if type_name in VAULT_ADAPTER_TYPES:
        wrapped = item.get("metaMorpho") or {}
        return VaultAdapter(
            address=address,
            allocation_usd=allocation_usd,
            allocation_assets=allocation_assets,
            vault_address=normalize_address(wrapped.get("address")),
            vault_name=wrapped.get("name"),
        )
    if type_name in MARKET_ADAPTER_TYPES:
        legs, skipped = _allocations(_nested(item, "positions", "items"))
        return MarketAdapter(
            address=address,
            allocation_usd=allocation_usd,
            allocation_assets=allocation_assets,
            legs=legs,
            skipped=skipped,
        )

    logger.warning("Unsupported adapter type %r at %s", type_name, address)
    return UnsupportedAdapter(
        address=address,
        allocation_usd=allocation_usd,
        allocation_assets=allocation_assets,
        type_name=type_name,
    )


def normalize_v2_vault(payload: dict[str, Any]) -> VaultV2Allocation:
    asset = payload.get("asset") or {}
    items = _nested(payload, "adapters", "items") or []
    return VaultV2Allocation(
        address=payload.get("address", ""),
        total_assets_usd=max(to_float(payload.get("totalAssetsUsd")), 0.0),
        idle_assets_usd=to_optional_float(payload.get("idleAssetsUsd")),
        liquidity_usd=to_optional_float(payload.get("liquidityUsd")),
        asset_symbol=asset.get("symbol"),
        asset_decimals=asset.get("decimals"),
        adapters=tuple(
            normalize_adapter(item) for item in items if isinstance(item, dict)
        ),
    )


def attach_vault(
    adapter: VaultAdapter,
    vault: VaultAllocation | None,
    error: str | None = None,
) -> VaultAdapter:
    """Return a copy of `adapter` with its nested vault resolved (or marked failed)."""
    return replace(adapter, vault=vault, error=error)
