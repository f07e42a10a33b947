from __future__ import annotations

from .formatter import format_market, format_ratings, format_v1_vault, format_v2_vault
from .generator import (
    market_record_to_dict,
    ratings_response,
    v1_vault_to_dict,
    v2_vault_to_dict,
)

__all__ = [
    "format_market",
    "format_ratings",
    "format_v1_vault",
    "format_v2_vault",
    "market_record_to_dict",
    "ratings_response",
    "v1_vault_to_dict",
    "v2_vault_to_dict",
]
