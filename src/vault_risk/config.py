"""Scoring configuration: named thresholds and curator weights.

A `ScoringConfig` is immutable. Per-request overrides build a new instance via
`with_overrides`, validating every value on its own so that one bad value never
invalidates the rest.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from .constants import DEFAULT_TARGET_UTILIZATION

logger = logging.getLogger(__name__)

# Fields expressed as fractions of 1; values above 1 were almost certainly typed as percents
FRACTION_FIELDS = (
    "utilization_ceiling",
    "rate_alignment_eps",
    "rate_alignment_high_yield_buffer",
    "rate_alignment_high_yield_eps",
    "fallback_benchmark_rate",
    "price_stress_pct",
    "liquidity_stress_pct",
    "withdrawal_liquidity_min_pct",
    "insolvency_tolerance_pct_tvl",
    "fallback_target_utilization",
)


def coerce_number(value: Any) -> float | None:
    """Return `value` as a finite float, or None when it is not one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _drop_invalid(model: type[BaseModel], data: Any) -> Any:
    if not isinstance(data, Mapping):
        return data
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if key == "weights":
            cleaned[key] = value
            continue
        number = coerce_number(value)
        if number is None:
            logger.warning(
                "Ignoring invalid %s value for %r: %r", model.__name__, key, value
            )
            continue
        cleaned[key] = number
    return cleaned


class CuratorWeights(BaseModel):
    """Per-component weights for the curator rating. The sum is not enforced."""

    utilization: float = 0.2
    rate_alignment: float = 0.15
    stress_exposure: float = 0.3
    withdrawal_liquidity: float = 0.2
    liquidation_capacity: float = 0.15

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def drop_invalid_values(cls, data: Any) -> Any:
        return _drop_invalid(cls, data)

    @property
    def total(self) -> float:
        return (
            self.utilization
            + self.rate_alignment
            + self.stress_exposure
            + self.withdrawal_liquidity
            + self.liquidation_capacity
        )


class ScoringConfig(BaseModel):
    """Thresholds shared by the market risk scorer and the curator rating engine."""

    utilization_ceiling: float = 0.9
    utilization_buffer_hours: float = 48.0
    max_utilization_beyond: float = 1.1
    rate_alignment_eps: float = 0.02
    rate_alignment_high_yield_buffer: float = 0.03
    rate_alignment_high_yield_eps: float = 0.01
    fallback_benchmark_rate: float = 0.05
    price_stress_pct: float = 0.3
    liquidity_stress_pct: float = 0.4
    withdrawal_liquidity_min_pct: float = 0.1
    insolvency_tolerance_pct_tvl: float = 0.0005
    min_tvl_usd: float = 10_000.0
    fallback_target_utilization: float = DEFAULT_TARGET_UTILIZATION
    weights: CuratorWeights = CuratorWeights()

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def drop_invalid_values(cls, data: Any) -> Any:
        """Non-numeric and non-finite values fall back to the field default."""
        return _drop_invalid(cls, data)

    @model_validator(mode="after")
    def warn_on_percent_values(self) -> "ScoringConfig":
        for name in FRACTION_FIELDS:
            value = getattr(self, name)
            if value > 1:
                logger.warning(
                    "%s=%s looks like a percent; expected a fraction in [0, 1] "
                    "and it will be clamped at use",
                    name,
                    value,
                )
        return self

    @classmethod
    def field_for_key(cls, key: str) -> str | None:
        """Resolve a snake_case or camelCase override key to a field name."""
        for name in cls.model_fields:
            if key in (name, to_camel(name)):
                return name
        return None

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> "ScoringConfig":
        """Return a new config with `overrides` applied on top of this one.

        Keys may be field names in snake_case or camelCase. Weights are given
        either as a `weights` mapping or as `weight.<name>` keys. Unknown keys
        and invalid values are logged and skipped.

        Args:
            overrides: Raw override values, typically strings from a CLI or query string

        Returns:
            A new ScoringConfig; `self` is left untouched
        """
        if not overrides:
            return self

        values = self.model_dump(exclude={"weights"})
        weights = self.weights.model_dump()

        def _set_weight(raw_name: str, raw_value: Any) -> None:
            name = _weight_field_for_key(raw_name)
            number = coerce_number(raw_value)
            if name is None or number is None:
                logger.warning("Ignoring weight override %r=%r", raw_name, raw_value)
                return
            weights[name] = number

        for key, value in overrides.items():
            if key == "weights" and isinstance(value, Mapping):
                for weight_key, weight_value in value.items():
                    _set_weight(str(weight_key), weight_value)
                continue
            if key.startswith("weight."):
                _set_weight(key.removeprefix("weight."), value)
                continue

            name = self.field_for_key(key)
            number = coerce_number(value)
            if name is None or name == "weights":
                logger.warning("Ignoring unknown scoring override %r", key)
                continue
            if number is None:
                logger.warning("Ignoring invalid scoring override %r=%r", key, value)
                continue
            values[name] = number

        return ScoringConfig.model_validate({**values, "weights": weights})


def _weight_field_for_key(key: str) -> str | None:
    for name in CuratorWeights.model_fields:
        if key in (name, to_camel(name)):
            return name
    return None


def clamp01(value: float) -> float:
    if not math.isfinite(value) or value < 0:
        return 0.0
    return min(value, 1.0)
