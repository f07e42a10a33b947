from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from vault_risk.config import ScoringConfig
from vault_risk.domain import OracleTimestampData
from vault_risk.pipeline.context import PipelineContext
from vault_risk.settings import CONFIG_ENV_VAR, RiskSettings
from vault_risk.state import AppState

ORACLE = "0x1111111111111111111111111111111111111111"
IRM = "0x2222222222222222222222222222222222222222"
FEED = "0x3333333333333333333333333333333333333333"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
WETH = "0x4200000000000000000000000000000000000006"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep developer config files and secrets out of every test."""
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "absent.toml"))
    for name in (
        "VAULT_RISK_ALCHEMY_API_KEY",
        "VAULT_RISK_RPC_URL",
        "VAULT_RISK_CHAIN_ID",
        "VAULT_RISK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> RiskSettings:
    return RiskSettings(
        rpc_url="https://rpc.example",
        api_max_tries=1,
        rpc_timeout_seconds=0.5,
    )


@pytest.fixture
def state(settings) -> AppState:
    return AppState(settings=settings, logger=logging.getLogger("test"))


@pytest.fixture
def market_payload():
    """Factory for Morpho API market payloads (WETH/USDC by default)."""

    def _build(
        unique_key: str = "0xmarket1",
        *,
        loan: str = "USDC",
        loan_address: str = USDC,
        collateral: str | None = "WETH",
        collateral_address: str = WETH,
        supply_usd: float = 1_000_000.0,
        borrow_usd: float = 500_000.0,
        collateral_usd: float = 2_000_000.0,
        liquidity_usd: float | None = None,
        size_usd: float | None = None,
        utilization: float | None = None,
        supply_apy: float | None = 0.05,
        lltv: Any = "860000000000000000",
        oracle: str | None = ORACLE,
        irm: str | None = IRM,
        bad_debt_usd: float = 0.0,
    ) -> dict[str, Any]:
        return {
            "id": f"id-{unique_key}",
            "uniqueKey": unique_key,
            "loanAsset": {"address": loan_address, "symbol": loan, "decimals": 6},
            "collateralAsset": (
                {"address": collateral_address, "symbol": collateral, "decimals": 18}
                if collateral
                else None
            ),
            "oracleAddress": oracle,
            "oracle": {"address": oracle, "type": "ChainlinkOracleV2", "data": {}},
            "irmAddress": irm,
            "lltv": lltv,
            "realizedBadDebt": {"usd": bad_debt_usd},
            "state": {
                "supplyAssetsUsd": supply_usd,
                "borrowAssetsUsd": borrow_usd,
                "collateralAssetsUsd": collateral_usd,
                "liquidityAssetsUsd": (
                    liquidity_usd
                    if liquidity_usd is not None
                    else supply_usd - borrow_usd
                ),
                "sizeUsd": size_usd if size_usd is not None else supply_usd,
                "utilization": (
                    utilization
                    if utilization is not None
                    else (borrow_usd / supply_usd if supply_usd else 0)
                ),
                "supplyApy": supply_apy,
                "borrowApy": 0.07,
            },
        }

    return _build


@pytest.fixture
def idle_market_payload():
    def _build(unique_key: str = "0xidle") -> dict[str, Any]:
        return {
            "uniqueKey": unique_key,
            "loanAsset": {"address": USDC, "symbol": "USDC", "decimals": 6},
            "collateralAsset": None,
            "oracleAddress": "0x0000000000000000000000000000000000000000",
            "irmAddress": "0x0000000000000000000000000000000000000000",
            "lltv": "0",
            "state": {"supplyAssetsUsd": 250_000.0, "borrowAssetsUsd": 0},
        }

    return _build


@pytest.fixture
def make_ctx(state):
    """Build a PipelineContext around mocked collaborators."""

    def _build(
        client: MagicMock | None = None,
        oracle_reader: MagicMock | None = None,
        irm_reader: MagicMock | None = None,
        config: ScoringConfig | None = None,
    ) -> PipelineContext:
        if oracle_reader is None:
            oracle_reader = MagicMock()
            oracle_reader.read_timestamp = AsyncMock(
                return_value=OracleTimestampData(
                    feed_address=FEED, updated_at=1_700_000_000, age_seconds=60
                )
            )
        oracle_reader.close = AsyncMock()
        if irm_reader is None:
            irm_reader = MagicMock()
            irm_reader.read_target_utilization = AsyncMock(return_value=0.9)
        irm_reader.close = AsyncMock()
        return PipelineContext(
            state=state,
            client=client or MagicMock(),
            oracle_reader=oracle_reader,
            irm_reader=irm_reader,
            config=config or ScoringConfig(),
        )

    return _build
