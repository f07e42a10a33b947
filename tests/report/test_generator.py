import json

import pytest

from vault_risk.config import ScoringConfig
from vault_risk.domain import (
    AdapterKind,
    AdapterRisk,
    Grade,
    MarketAllocation,
    OracleTimestampData,
    SkippedLeg,
    V1VaultRisk,
    VaultRisk,
)
from vault_risk.processors.aggregator import build_market_record
from vault_risk.processors.curator import rate_market
from vault_risk.processors.normalizer import normalize_market
from vault_risk.report.generator import (
    market_record_to_dict,
    rating_to_dict,
    ratings_response,
    v1_vault_to_dict,
    v2_vault_to_dict,
)

FRESH = OracleTimestampData(feed_address="0xf", updated_at=1, age_seconds=60)


@pytest.fixture
def scored_record(market_payload):
    leg = MarketAllocation(
        market=normalize_market(market_payload()), allocation_usd=100.0
    )
    return build_market_record(leg, FRESH, 0.9)


@pytest.fixture
def idle_record(idle_market_payload):
    leg = MarketAllocation(
        market=normalize_market(idle_market_payload()), allocation_usd=50.0
    )
    return build_market_record(leg, None, 0.9)


def test_market_record_dict_renders_enums_and_flags(scored_record, idle_record):
    scored = market_record_to_dict(scored_record)
    idle = market_record_to_dict(idle_record)

    assert scored["status"] == "scored"
    assert scored["idle"] is False
    assert scored["pair"] == "WETH/USDC"
    assert scored["scores"]["grade"] in {g.value for g in Grade}
    assert scored["oracle_data"]["age_seconds"] == 60
    assert idle["status"] == "idle"
    assert idle["idle"] is True
    assert idle["scores"] is None
    assert idle["oracle_data"] is None


def test_v1_vault_dict_is_json_serializable(scored_record, idle_record):
    risk = V1VaultRisk(
        vault_address="0xv1",
        name="Vault",
        liquidity_usd=10.0,
        risk_score=95.0,
        grade=Grade.A_PLUS,
        markets=(scored_record, idle_record),
        skipped_legs=(SkippedLeg(allocation_usd=5.0, reason="Allocation entry has no market"),),
    )

    data = v1_vault_to_dict(risk)

    assert data["grade"] == "A+"
    assert [m["idle"] for m in data["markets"]] == [False, True]
    assert list(data["skipped_legs"]) == [
        {"allocation_usd": 5.0, "reason": "Allocation entry has no market"}
    ]
    json.dumps(data)


def test_v2_vault_dict_totals_adapters(scored_record):
    resolved = AdapterRisk(
        address="0xa1",
        kind=AdapterKind.MARKETS,
        label="Morpho Market Adapter",
        allocation_usd=100.0,
        allocation_assets="100",
        risk_score=90.0,
        grade=Grade.A,
        markets=(scored_record,),
    )
    unresolved = AdapterRisk(
        address="0xa2",
        kind=AdapterKind.VAULT,
        label="MetaMorpho Adapter",
        allocation_usd=25.0,
        allocation_assets=None,
        risk_score=None,
        grade=None,
        vault_address="0xv1",
        resolved=False,
        error="Vault not found: 0xv1",
    )
    risk = VaultRisk(
        vault_address="0xv2",
        total_assets_usd=125.0,
        liquidity_usd=None,
        asset_symbol="USDC",
        risk_score=90.0,
        grade=Grade.A,
        adapters=(resolved, unresolved),
    )

    data = v2_vault_to_dict(risk)

    assert data["total_adapter_assets_usd"] == 125.0
    assert data["adapters"][0]["kind"] == "markets"
    assert data["adapters"][0]["markets"][0]["pair"] == "WETH/USDC"
    assert data["adapters"][1]["grade"] is None
    assert data["adapters"][1]["resolved"] is False
    json.dumps(data)


def test_rating_dict_drops_raw_and_scales_components(market_payload):
    rating = rate_market(
        normalize_market(market_payload(supply_usd=1e7, collateral_usd=4e7)),
        ScoringConfig(),
    )

    data = rating_to_dict(rating)

    assert "raw" not in data
    assert data["status"] == "scored"
    assert data["component_scores"]["utilization"] == 100.0
    assert data["components"]["utilization"] == 1.0
    assert data["weights"]["withdrawal_liquidity"] == 0.2


def test_ratings_response_optionally_groups_by_symbol(market_payload):
    config = ScoringConfig()
    ratings = [
        rate_market(normalize_market(market_payload("0xa", supply_usd=1e7)), config),
        rate_market(
            normalize_market(market_payload("0xb", supply_usd=1e7, loan="WETH")), config
        ),
    ]

    flat = ratings_response(ratings)
    grouped = ratings_response(ratings, group_by=True)

    assert "timestamp" in flat
    assert "by_symbol" not in flat
    assert len(flat["markets"]) == 2
    assert grouped["by_symbol"] == {"USDC": ["id-0xa"], "WETH": ["id-0xb"]}
    json.dumps(grouped)
