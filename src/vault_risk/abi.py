from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

ABIS_DIR = Path(__file__).parent / "abis"

AGGREGATOR_ABI_PATH = ABIS_DIR / "AggregatorV3Interface.json"
ORACLE_FEEDS_ABI_PATH = ABIS_DIR / "MorphoOracleFeeds.json"
IRM_ABI_PATH = ABIS_DIR / "AdaptiveCurveIrm.json"


def load_abi(path: str | Path) -> list[dict]:
    """Read a bundled ABI file.

    The files follow the Foundry artifact shape, so only the "abi" key is
    returned. A missing key raises KeyError.
    """
    data = json.loads(Path(path).read_text())
    return data["abi"]


@lru_cache(maxsize=None)
def load_aggregator_abi() -> list[dict]:
    """Load the Chainlink AggregatorV3Interface ABI."""
    return load_abi(AGGREGATOR_ABI_PATH)


@lru_cache(maxsize=None)
def load_oracle_feeds_abi() -> list[dict]:
    """Load the feed getters exposed by Morpho Chainlink oracles."""
    return load_abi(ORACLE_FEEDS_ABI_PATH)


@lru_cache(maxsize=None)
def load_irm_abi() -> list[dict]:
    return load_abi(IRM_ABI_PATH)
