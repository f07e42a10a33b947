"""Interest-rate-model target utilization."""

from __future__ import annotations

from ..constants import WAD


def kink_to_fraction(raw_kink: int | None) -> float | None:
    """Convert a 1e18-scaled kink to a fraction, rejecting values outside [0, 1]."""
    if raw_kink is None:
        return None
    value = raw_kink / WAD
    if value < 0 or value > 1:
        return None
    return value


def resolve_target_utilization(value: float | None, fallback: float) -> float:
    """Resolve with fallback: the engine never scores against a missing target."""
    if value is None or value <= 0 or value > 1:
        return fallback
    return value
