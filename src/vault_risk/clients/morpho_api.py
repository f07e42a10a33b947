"""Morpho GraphQL API client.

Thin, synchronous requests wrapper with backoff retries; the async methods push
each HTTP call onto a worker thread so the pipeline can fan out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import backoff
import requests

from ..errors import MorphoApiError
from ..settings import RiskSettings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

MARKET_FIELDS = """
  id
  uniqueKey
  loanAsset { address symbol decimals }
  collateralAsset { address symbol decimals }
  oracleAddress
  oracle {
    address
    type
    data {
      ... on MorphoChainlinkOracleV2Data { baseFeedOne { address } }
      ... on MorphoChainlinkOracleData { baseFeedOne { address } }
    }
  }
  irmAddress
  lltv
  realizedBadDebt { usd }
  state {
    supplyAssetsUsd
    borrowAssetsUsd
    collateralAssetsUsd
    liquidityAssetsUsd
    sizeUsd
    utilization
    supplyApy
    borrowApy
  }
"""

VAULT_V1_QUERY = (
    """
query VaultV1Risk($address: String!, $chainId: Int!) {
  vault: vaultByAddress(address: $address, chainId: $chainId) {
    address
    name
    liquidity { usd }
    state {
      totalAssetsUsd
      allocation {
        supplyAssets
        supplyAssetsUsd
        market {"""
    + MARKET_FIELDS
    + """}
      }
    }
  }
}
"""
)

VAULT_V2_QUERY = (
    """
query VaultV2Risk($address: String!, $chainId: Int!, $adapterLimit: Int!, $positionLimit: Int!) {
  vault: vaultV2ByAddress(address: $address, chainId: $chainId) {
    address
    totalAssetsUsd
    idleAssetsUsd
    liquidityUsd
    asset { symbol decimals }
    adapters(first: $adapterLimit) {
      items {
        __typename
        address
        assets
        assetsUsd
        type
        ... on MetaMorphoAdapter {
          metaMorpho { address name symbol }
        }
        ... on MorphoMarketV1Adapter {
          positions(first: $positionLimit) {
            items {
              state { supplyAssets supplyAssetsUsd }
              market {"""
    + MARKET_FIELDS
    + """}
            }
          }
        }
      }
    }
  }
}
"""
)

MARKETS_QUERY = (
    """
query Markets($first: Int!, $chainIds: [Int!]) {
  markets(first: $first, where: { chainId_in: $chainIds }) {
    items {"""
    + MARKET_FIELDS
    + """}
  }
}
"""
)

MARKET_QUERY = (
    """
query Market($uniqueKey: String!, $chainId: Int!) {
  market: marketByUniqueKey(uniqueKey: $uniqueKey, chainId: $chainId) {"""
    + MARKET_FIELDS
    + """}
}
"""
)


def _is_not_found(errors: list[dict]) -> bool:
    return any(
        (error.get("status") or "").upper() == "NOT_FOUND"
        or "not found" in (error.get("message") or "").lower()
        for error in errors
    )


class MorphoApiClient:
    """Client for the Morpho Blue GraphQL API.

    Missing vaults and markets come back as None; transport failures are retried
    and then raised as MorphoApiError.
    """

    def __init__(self, settings: RiskSettings, session: requests.Session | None = None):
        self._url = settings.morpho_api_url
        self._chain_id = settings.chain_id
        self._timeout = settings.api_timeout_seconds
        self._max_tries = settings.api_max_tries
        self._adapter_limit = settings.adapter_limit
        self._position_limit = settings.position_limit
        self._session = session or requests.Session()

    def _post(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        def _giveup(exc: Exception) -> bool:
            return (
                isinstance(exc, requests.HTTPError)
                and exc.response is not None
                and exc.response.status_code not in RETRYABLE_STATUS
            )

        def _on_backoff(details: Any) -> None:
            logger.warning(
                "Morpho API request failed (attempt %d of %d): %s",
                details["tries"],
                self._max_tries,
                details.get("exception"),
            )

        @backoff.on_exception(
            backoff.expo,
            requests.RequestException,
            max_tries=self._max_tries,
            giveup=_giveup,
            on_backoff=_on_backoff,
            jitter=backoff.full_jitter,
        )
        def _send() -> dict[str, Any]:
            response = self._session.post(
                self._url,
                json={"query": query, "variables": variables},
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()

        try:
            payload = _send()
        except requests.RequestException as e:
            raise MorphoApiError(f"Morpho API request failed: {e}") from e
        except ValueError as e:
            raise MorphoApiError(f"Morpho API returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise MorphoApiError("Morpho API returned an unexpected payload")
        return payload

    def _query(
        self, query: str, variables: dict[str, Any], root: str
    ) -> dict[str, Any] | list[Any] | None:
        payload = self._post(query, variables)
        errors = payload.get("errors") or []
        data = payload.get("data") or {}
        if errors:
            if _is_not_found(errors) and data.get(root) is None:
                logger.debug("Morpho API: %s not found for %s", root, variables)
                return None
            messages = "; ".join(e.get("message", "unknown error") for e in errors)
            raise MorphoApiError(f"Morpho API GraphQL errors: {messages}", errors)
        return data.get(root)

    async def fetch_v1_vault(self, address: str) -> dict[str, Any] | None:
        """Fetch a V1 (MetaMorpho) vault with its market allocations."""
        result = await asyncio.to_thread(
            self._query,
            VAULT_V1_QUERY,
            {"address": address, "chainId": self._chain_id},
            "vault",
        )
        return result if isinstance(result, dict) else None

    async def fetch_v2_vault(self, address: str) -> dict[str, Any] | None:
        """Fetch a V2 vault with its adapters and their market positions."""
        result = await asyncio.to_thread(
            self._query,
            VAULT_V2_QUERY,
            {
                "address": address,
                "chainId": self._chain_id,
                "adapterLimit": self._adapter_limit,
                "positionLimit": self._position_limit,
            },
            "vault",
        )
        return result if isinstance(result, dict) else None

    async def fetch_markets(
        self, limit: int, chain_ids: list[int] | None = None
    ) -> list[dict[str, Any]]:
        result = await asyncio.to_thread(
            self._query,
            MARKETS_QUERY,
            {"first": limit, "chainIds": chain_ids or [self._chain_id]},
            "markets",
        )
        items = result.get("items") if isinstance(result, dict) else None
        return [item for item in items or [] if isinstance(item, dict)]

    async def fetch_market(self, unique_key: str) -> dict[str, Any] | None:
        result = await asyncio.to_thread(
            self._query,
            MARKET_QUERY,
            {"uniqueKey": unique_key, "chainId": self._chain_id},
            "market",
        )
        return result if isinstance(result, dict) else None

    def close(self) -> None:
        self._session.close()
