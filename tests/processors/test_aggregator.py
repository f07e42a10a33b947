import pytest

from vault_risk.domain import (
    AdapterKind,
    Grade,
    MarketAdapter,
    MarketAllocation,
    OracleTimestampData,
    ScoreStatus,
    SkippedLeg,
    UnsupportedAdapter,
    VaultAdapter,
    VaultAllocation,
)
from vault_risk.processors.aggregator import (
    adapter_legs,
    aggregate_adapter,
    aggregate_markets,
    aggregate_vault,
    build_market_record,
    idle_record,
    is_market_idle,
    sort_adapters,
    weighted_score,
)
from vault_risk.processors.normalizer import normalize_market

FRESH = OracleTimestampData(feed_address="0xf", updated_at=1, age_seconds=60)


@pytest.fixture
def leg(market_payload):
    def _build(allocation_usd: float, **market_kwargs) -> MarketAllocation:
        return MarketAllocation(
            market=normalize_market(market_payload(**market_kwargs)),
            allocation_usd=allocation_usd,
        )

    return _build


@pytest.fixture
def idle_leg(idle_market_payload):
    def _build(allocation_usd: float, key: str = "0xidle") -> MarketAllocation:
        return MarketAllocation(
            market=normalize_market(idle_market_payload(key)),
            allocation_usd=allocation_usd,
        )

    return _build


def test_weighted_score_is_allocation_weighted():
    score, grade = weighted_score([(80.0, 100.0), (60.0, 300.0)])

    assert score == pytest.approx(65.0)
    assert grade is Grade.C_MINUS


def test_weighted_score_with_no_weight_is_zero_f():
    assert weighted_score([]) == (0.0, Grade.F)
    assert weighted_score([(90.0, 0.0)]) == (0.0, Grade.F)


def test_structural_idle_market_is_idle(idle_leg):
    assert is_market_idle(idle_leg(1_000_000))


def test_dust_allocation_in_empty_market_is_idle(leg):
    assert is_market_idle(leg(0.5, supply_usd=0.5, borrow_usd=0))
    assert not is_market_idle(leg(0.5, supply_usd=1_000_000))


def test_unknown_collateral_symbol_is_idle(leg):
    assert is_market_idle(leg(100.0, collateral="Unknown"))


def test_idle_record_has_no_score_or_lookups(idle_leg):
    record = build_market_record(idle_leg(500.0), FRESH, 0.9)

    assert record.status is ScoreStatus.IDLE
    assert record.is_idle
    assert record.scores is None
    assert record.oracle_data is None
    assert record.target_utilization is None
    assert record == idle_record(idle_leg(500.0))


def test_build_market_record_scores_active_market(leg):
    record = build_market_record(leg(1_000.0), FRESH, 0.9)

    assert record.status is ScoreStatus.SCORED
    assert record.scores is not None
    assert record.stress is not None
    assert record.derived is not None
    assert record.target_utilization == 0.9


def test_aggregate_excludes_idle_markets_from_weights(leg, idle_leg):
    scored = build_market_record(leg(100.0, borrow_usd=0, utilization=0.9), FRESH, 0.9)
    idle = build_market_record(idle_leg(1_000_000.0), FRESH, 0.9)

    aggregate = aggregate_markets([scored, idle])

    assert aggregate.weighted_score == pytest.approx(100.0)
    assert aggregate.grade is Grade.A_PLUS
    assert [r.status for r in aggregate.markets] == [ScoreStatus.IDLE, ScoreStatus.SCORED]


def test_all_idle_aggregates_to_zero_f(idle_leg):
    records = [build_market_record(idle_leg(10.0, f"0xi{i}"), None, 0.9) for i in range(3)]

    aggregate = aggregate_markets(records)

    assert aggregate.weighted_score == 0.0
    assert aggregate.grade is Grade.F
    assert len(aggregate.markets) == 3


def test_idle_sorts_after_scored_on_equal_allocation(leg, idle_leg):
    idle = build_market_record(idle_leg(50.0), None, 0.9)
    scored = build_market_record(leg(50.0), FRESH, 0.9)
    bigger = build_market_record(leg(75.0, unique_key="0xbig"), FRESH, 0.9)

    aggregate = aggregate_markets([idle, scored, bigger])

    assert [r.market.unique_key for r in aggregate.markets] == [
        "0xbig",
        "0xmarket1",
        "0xidle",
    ]


def test_adapter_legs_dispatch(leg):
    nested = VaultAllocation(
        address="0xv1", name="n", total_assets_usd=1.0, liquidity_usd=None, legs=(leg(1.0),)
    )
    vault_adapter = VaultAdapter(
        address="0xa1",
        allocation_usd=1.0,
        allocation_assets=None,
        vault_address="0xv1",
        vault=nested,
    )
    market_adapter = MarketAdapter(
        address="0xa2", allocation_usd=1.0, allocation_assets=None, legs=(leg(2.0),)
    )
    unsupported = UnsupportedAdapter(address="0xa3", allocation_usd=1.0, allocation_assets=None)

    assert adapter_legs(vault_adapter) == nested.legs
    assert adapter_legs(market_adapter) == market_adapter.legs
    assert adapter_legs(unsupported) == ()


def test_adapter_risk_carries_skipped_legs(leg):
    skipped = (SkippedLeg(allocation_usd=7.0, reason="Allocation entry has no market"),)
    nested = VaultAllocation(
        address="0xv1",
        name="n",
        total_assets_usd=1.0,
        liquidity_usd=None,
        legs=(leg(1.0),),
        skipped=skipped,
    )
    vault_adapter = VaultAdapter(
        address="0xa1",
        allocation_usd=1.0,
        allocation_assets=None,
        vault_address="0xv1",
        vault=nested,
    )
    market_adapter = MarketAdapter(
        address="0xa2",
        allocation_usd=1.0,
        allocation_assets=None,
        legs=(leg(2.0),),
        skipped=skipped,
    )
    records = [build_market_record(leg(1.0), FRESH, 0.9)]

    assert aggregate_adapter(vault_adapter, records).skipped_legs == skipped
    assert aggregate_adapter(market_adapter, records).skipped_legs == skipped
    assert aggregate_adapter(market_adapter, records).resolved is True


def test_unresolved_vault_adapter_has_no_score():
    adapter = VaultAdapter(
        address="0xa1",
        allocation_usd=100.0,
        allocation_assets=None,
        vault_address="0xv1",
        error="Vault not found: 0xv1",
    )

    risk = aggregate_adapter(adapter, [])

    assert risk.resolved is False
    assert risk.risk_score is None
    assert risk.grade is None
    assert risk.error == "Vault not found: 0xv1"


def test_unsupported_adapter_is_unresolved():
    adapter = UnsupportedAdapter(
        address="0xa3", allocation_usd=10.0, allocation_assets=None, type_name="Foo"
    )

    risk = aggregate_adapter(adapter, [])

    assert risk.kind is AdapterKind.UNKNOWN
    assert risk.resolved is False
    assert "Foo" in risk.label


def test_vault_rollup_excludes_unresolved_and_empty_adapters(leg, idle_leg):
    market_adapter = MarketAdapter(
        address="0xa2", allocation_usd=300.0, allocation_assets=None
    )
    scored = aggregate_adapter(
        market_adapter,
        [build_market_record(leg(300.0, borrow_usd=0, utilization=0.9), FRESH, 0.9)],
    )
    only_idle = aggregate_adapter(
        MarketAdapter(address="0xa4", allocation_usd=900.0, allocation_assets=None),
        [build_market_record(idle_leg(900.0), None, 0.9)],
    )
    unresolved = aggregate_adapter(
        VaultAdapter(
            address="0xa1",
            allocation_usd=10_000.0,
            allocation_assets=None,
            vault_address="0xv1",
        ),
        [],
    )

    score, grade = aggregate_vault([scored, only_idle, unresolved])

    assert only_idle.risk_score == 0.0
    assert score == pytest.approx(100.0)
    assert grade is Grade.A_PLUS


def test_sort_adapters_puts_unresolved_last_on_ties():
    resolved = aggregate_adapter(
        MarketAdapter(address="0xa2", allocation_usd=5.0, allocation_assets=None), []
    )
    unresolved = aggregate_adapter(
        UnsupportedAdapter(address="0xa3", allocation_usd=5.0, allocation_assets=None), []
    )
    larger = aggregate_adapter(
        UnsupportedAdapter(address="0xa5", allocation_usd=50.0, allocation_assets=None), []
    )

    ordered = sort_adapters([unresolved, resolved, larger])

    assert [a.address for a in ordered] == ["0xa5", "0xa2", "0xa3"]
