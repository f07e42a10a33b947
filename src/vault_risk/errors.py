"""Exceptions surfaced to callers of the risk engine."""

from __future__ import annotations


class VaultRiskError(Exception):
    """Base class for errors raised by vault-risk."""


class MorphoApiError(VaultRiskError):
    """The Morpho data API failed or returned GraphQL errors."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(VaultRiskError):
    """A requested entity does not exist upstream."""

    entity = "Entity"

    def __init__(self, identifier: str):
        super().__init__(f"{self.entity} not found: {identifier}")
        self.identifier = identifier


class MarketNotFoundError(NotFoundError):
    entity = "Market"


class VaultNotFoundError(NotFoundError):
    entity = "Vault"
