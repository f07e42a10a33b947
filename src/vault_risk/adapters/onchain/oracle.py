"""Oracle feed freshness reader."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from web3 import AsyncWeb3

from vault_risk.abi import load_aggregator_abi, load_oracle_feeds_abi
from vault_risk.adapters.onchain.base import BaseOnchainReader
from vault_risk.constants import ORACLE_FEED_GETTERS
from vault_risk.domain import UNRESOLVED_ORACLE, OracleTimestampData
from vault_risk.processors.normalizer import normalize_address
from vault_risk.settings import RiskSettings

logger = logging.getLogger(__name__)


class OnchainOracleReader(BaseOnchainReader):
    """Resolve the last update of the Chainlink feed behind a Morpho oracle."""

    def __init__(
        self,
        config: RiskSettings,
        w3: AsyncWeb3 | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(config, w3)
        self._clock = clock

    @property
    def name(self) -> str:
        return "Oracle Freshness Reader"

    async def resolve_feed(self, oracle_address: str) -> str | None:
        """Find the oracle's base feed by trying the known getter shapes in order."""
        oracle = self.w3.eth.contract(
            address=self.w3.to_checksum_address(oracle_address),
            abi=load_oracle_feeds_abi(),
        )
        for getter, args in ORACLE_FEED_GETTERS:
            try:
                candidate = await getattr(oracle.functions, getter)(*args).call()
            except Exception as e:
                logger.debug("%s(%s) failed on %s: %s", getter, args, oracle_address, e)
                continue
            feed = normalize_address(candidate)
            if feed is not None:
                logger.debug("Resolved feed %s via %s on %s", feed, getter, oracle_address)
                return feed
        return None

    async def latest_updated_at(self, feed_address: str) -> int | None:
        feed = self.w3.eth.contract(
            address=self.w3.to_checksum_address(feed_address),
            abi=load_aggregator_abi(),
        )
        (
            _round_id,
            _answer,
            _started_at,
            updated_at,
            _answered_in_round,
        ) = await feed.functions.latestRoundData().call()
        return int(updated_at) if updated_at else None

    async def read_timestamp(
        self, oracle_address: str | None, base_feed_address: str | None = None
    ) -> OracleTimestampData:
        """Read the feed's last update and its age.

        Args:
            oracle_address: Morpho oracle address; None or zero means opaque
            base_feed_address: Feed already known from the data API, if any

        Returns:
            OracleTimestampData, unresolved on any failure or timeout
        """
        if normalize_address(oracle_address) is None:
            return UNRESOLVED_ORACLE

        feed_address = normalize_address(base_feed_address)
        try:
            async with asyncio.timeout(self._timeout):
                if feed_address is None:
                    feed_address = await self.resolve_feed(oracle_address)
                if feed_address is None:
                    logger.debug("No feed resolvable for oracle %s", oracle_address)
                    return UNRESOLVED_ORACLE
                updated_at = await self.latest_updated_at(feed_address)
        except TimeoutError:
            logger.warning(
                "Timed out reading oracle %s after %.1fs", oracle_address, self._timeout
            )
            return UNRESOLVED_ORACLE
        except Exception as e:
            logger.warning("Failed to read oracle %s: %s", oracle_address, e)
            return UNRESOLVED_ORACLE

        if updated_at is None:
            return OracleTimestampData(
                feed_address=feed_address, updated_at=None, age_seconds=None
            )
        age = max(0, int(self._clock()) - updated_at)
        return OracleTimestampData(
            feed_address=feed_address, updated_at=updated_at, age_seconds=age
        )
