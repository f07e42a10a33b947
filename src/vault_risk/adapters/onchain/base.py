"""Shared AsyncWeb3 plumbing for on-chain readers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from eth_typing import URI
from web3 import AsyncWeb3

from vault_risk.settings import RiskSettings

logger = logging.getLogger(__name__)


class BaseOnchainReader(ABC):
    """Base class for readers that tolerate failures instead of raising.

    Every public read returns None (or an unresolved record) on a missing
    address, a reverted call or a timeout. Callers decide on the fallback.
    """

    def __init__(self, config: RiskSettings, w3: AsyncWeb3 | None = None):
        self._rpc_url = config.rpc_url_required
        self._timeout = config.rpc_timeout_seconds
        self._w3 = w3
        self._owns_w3 = w3 is None

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name used in log messages."""

    @property
    def w3(self) -> AsyncWeb3:
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(URI(self._rpc_url)))
        return self._w3

    async def close(self) -> None:
        if self._w3 is None or not self._owns_w3:
            return
        try:
            await self._w3.provider.disconnect()  # type: ignore[union-attr]
        except AttributeError as e:
            logger.debug(f"Provider disconnect expected (no disconnect method): {e}")
        finally:
            self._w3 = None
