"""Interest-rate-model target utilization reader."""

from __future__ import annotations

import asyncio
import logging

from vault_risk.abi import load_irm_abi
from vault_risk.adapters.onchain.base import BaseOnchainReader
from vault_risk.processors.irm_target import kink_to_fraction
from vault_risk.processors.normalizer import normalize_address

logger = logging.getLogger(__name__)


class OnchainIrmReader(BaseOnchainReader):
    """Read the utilization kink an IRM is tuned around."""

    @property
    def name(self) -> str:
        return "IRM Target Reader"

    async def read_target_utilization(self, irm_address: str | None) -> float | None:
        """Return the IRM's kink as a fraction, or None when unavailable.

        Unrecognised models (no `kink()`), reverts, timeouts and values outside
        [0, 1] all yield None.
        """
        if normalize_address(irm_address) is None:
            return None
        try:
            async with asyncio.timeout(self._timeout):
                irm = self.w3.eth.contract(
                    address=self.w3.to_checksum_address(irm_address),
                    abi=load_irm_abi(),
                )
                raw_kink = await irm.functions.kink().call()
        except TimeoutError:
            logger.warning("Timed out reading IRM %s", irm_address)
            return None
        except Exception as e:
            logger.debug("IRM %s exposes no readable kink: %s", irm_address, e)
            return None

        target = kink_to_fraction(int(raw_kink))
        if target is None:
            logger.warning("IRM %s kink %s outside [0, 1]", irm_address, raw_kink)
        return target
