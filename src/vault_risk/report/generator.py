"""JSON-ready response builders for risk results."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..domain import (
    AdapterRisk,
    CuratorRating,
    MarketRiskRecord,
    V1VaultRisk,
    VaultRisk,
)
from ..processors.curator import group_by_symbol


def _dict_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {
        key: value.value if isinstance(value, Enum) else value for key, value in items
    }


def to_plain(obj: Any) -> dict[str, Any]:
    """asdict() with enums rendered as their values."""
    return asdict(obj, dict_factory=_dict_factory)


def market_record_to_dict(record: MarketRiskRecord) -> dict[str, Any]:
    data = to_plain(record)
    data["idle"] = record.is_idle
    data["pair"] = record.market.pair_label
    return data


def adapter_risk_to_dict(risk: AdapterRisk) -> dict[str, Any]:
    data = to_plain(risk)
    data["markets"] = [market_record_to_dict(record) for record in risk.markets]
    return data


def v1_vault_to_dict(risk: V1VaultRisk) -> dict[str, Any]:
    data = to_plain(risk)
    data["markets"] = [market_record_to_dict(record) for record in risk.markets]
    return data


def v2_vault_to_dict(risk: VaultRisk) -> dict[str, Any]:
    data = to_plain(risk)
    data["adapters"] = [adapter_risk_to_dict(adapter) for adapter in risk.adapters]
    data["total_adapter_assets_usd"] = sum(a.allocation_usd for a in risk.adapters)
    return data


def rating_to_dict(rating: CuratorRating) -> dict[str, Any]:
    """Curator rating with components scaled to 0-100 for display.

    The raw market is dropped; `rating` stays None for insufficient TVL.
    """
    data = to_plain(rating)
    data.pop("raw", None)
    data["component_scores"] = {
        name: round(value * 100, 2) for name, value in data["components"].items()
    }
    return data


def ratings_response(
    ratings: list[CuratorRating], group_by: bool = False
) -> dict[str, Any]:
    response: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "markets": [rating_to_dict(rating) for rating in ratings],
    }
    if group_by:
        response["by_symbol"] = {
            symbol: [r.market_id for r in group]
            for symbol, group in group_by_symbol(ratings).items()
        }
    return response
