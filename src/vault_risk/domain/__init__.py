"""Domain models for market and vault risk scoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Grade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    A_MINUS = "A-"
    B_PLUS = "B+"
    B = "B"
    B_MINUS = "B-"
    C_PLUS = "C+"
    C = "C"
    C_MINUS = "C-"
    D = "D"
    F = "F"


class ScoreStatus(str, Enum):
    """Explicit tri-state carried next to every score so that 0 is never a sentinel."""

    SCORED = "scored"
    IDLE = "idle"
    INSUFFICIENT_TVL = "insufficient_tvl"


class AdapterKind(str, Enum):
    VAULT = "vault"
    MARKETS = "markets"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AssetInfo:
    """An ERC20 asset as reported by the data API."""

    address: str | None
    symbol: str | None
    decimals: int | None = None


@dataclass(frozen=True)
class OracleRef:
    """Oracle reference; `base_feed_address` is only set for composite oracles."""

    address: str | None
    type: str | None = None
    base_feed_address: str | None = None


@dataclass(frozen=True)
class MarketState:
    supply_usd: float = 0.0
    borrow_usd: float = 0.0
    collateral_usd: float = 0.0
    liquidity_usd: float = 0.0
    size_usd: float = 0.0
    utilization: float | None = None
    supply_apy: float | None = None
    borrow_apy: float | None = None


@dataclass(frozen=True)
class Market:
    """Normalized per-market record shared by every scoring path."""

    unique_key: str
    loan_asset: AssetInfo
    collateral_asset: AssetInfo | None
    oracle: OracleRef
    irm_address: str | None
    lltv: float | None
    state: MarketState
    realized_bad_debt_usd: float = 0.0
    id: str | None = None

    @property
    def pair_label(self) -> str:
        collateral = (
            self.collateral_asset.symbol
            if self.collateral_asset and self.collateral_asset.symbol
            else "idle"
        )
        return f"{collateral}/{self.loan_asset.symbol or '?'}"


@dataclass(frozen=True)
class MarketAllocation:
    """Allocation leg from a vault or adapter into a market."""

    market: Market
    allocation_usd: float
    allocation_assets: str | None = None


@dataclass(frozen=True)
class SkippedLeg:
    """Allocation entry that could not be normalized; kept so it is reported, never scored."""

    allocation_usd: float
    reason: str


@dataclass(frozen=True)
class VaultAllocation:
    """A V1 vault and its direct market legs."""

    address: str
    name: str | None
    total_assets_usd: float
    liquidity_usd: float | None
    legs: tuple[MarketAllocation, ...] = ()
    skipped: tuple[SkippedLeg, ...] = ()


@dataclass(frozen=True)
class VaultAdapter:
    """Adapter routing capital into another (V1) vault."""

    address: str
    allocation_usd: float
    allocation_assets: str | None
    vault_address: str | None
    vault_name: str | None = None
    vault: VaultAllocation | None = None
    error: str | None = None
    kind: AdapterKind = field(default=AdapterKind.VAULT, init=False)


@dataclass(frozen=True)
class MarketAdapter:
    """Adapter holding a flat list of direct market positions."""

    address: str
    allocation_usd: float
    allocation_assets: str | None
    legs: tuple[MarketAllocation, ...] = ()
    skipped: tuple[SkippedLeg, ...] = ()
    kind: AdapterKind = field(default=AdapterKind.MARKETS, init=False)


@dataclass(frozen=True)
class UnsupportedAdapter:
    """Adapter whose upstream type is not recognised; listed but never scored."""

    address: str
    allocation_usd: float
    allocation_assets: str | None
    type_name: str | None = None
    kind: AdapterKind = field(default=AdapterKind.UNKNOWN, init=False)


Adapter = VaultAdapter | MarketAdapter | UnsupportedAdapter


@dataclass(frozen=True)
class VaultV2Allocation:
    address: str
    total_assets_usd: float
    idle_assets_usd: float | None
    liquidity_usd: float | None
    asset_symbol: str | None
    asset_decimals: int | None
    adapters: tuple[Adapter, ...] = ()


@dataclass(frozen=True)
class OracleTimestampData:
    """Last update of the oracle's underlying feed. All fields None when unresolved."""

    feed_address: str | None
    updated_at: int | None
    age_seconds: int | None

    @property
    def resolved(self) -> bool:
        return self.age_seconds is not None


UNRESOLVED_ORACLE = OracleTimestampData(
    feed_address=None, updated_at=None, age_seconds=None
)


@dataclass(frozen=True)
class StressResult:
    """Post-shock solvency and liquidity figures for one market.

    `coverage_ratio` is None when nothing is liquidatable (maximal coverage).
    """

    price_shock: float
    lltv: float
    headroom_usd: float
    headroom_ratio: float | None
    available_liquidity_usd: float
    liquidatable_borrow_usd: float
    coverage_ratio: float | None


@dataclass(frozen=True)
class MarketScores:
    oracle_score: float
    utilization_score: float
    liquidation_headroom_score: float
    coverage_ratio_score: float
    market_risk_score: float
    grade: Grade
    realized_bad_debt_usd: float = 0.0


@dataclass(frozen=True)
class DerivedMetrics:
    """Display-oriented figures derived from the stress result and market state."""

    lltv_pct: float | None
    price_shock_pct: float
    headroom_usd: float
    headroom_ratio_pct: float | None
    utilization_pct: float | None
    available_liquidity_usd: float
    liquidatable_borrow_usd: float
    coverage_ratio: float | None
    oracle_age_hours: float | None
    oracle_age_days: float | None
    supply_apy_pct: float | None
    borrow_apy_pct: float | None


@dataclass(frozen=True)
class MarketRiskRecord:
    """One market's risk within a vault or adapter context."""

    market: Market
    allocation_usd: float
    allocation_assets: str | None
    status: ScoreStatus
    scores: MarketScores | None = None
    oracle_data: OracleTimestampData | None = None
    target_utilization: float | None = None
    stress: StressResult | None = None
    derived: DerivedMetrics | None = None

    @property
    def is_idle(self) -> bool:
        return self.status is ScoreStatus.IDLE


@dataclass(frozen=True)
class AggregateRisk:
    weighted_score: float
    grade: Grade
    markets: tuple[MarketRiskRecord, ...]


@dataclass(frozen=True)
class AdapterRisk:
    """Risk for one V2 adapter. `risk_score` is None when the adapter could not be scored."""

    address: str
    kind: AdapterKind
    label: str
    allocation_usd: float
    allocation_assets: str | None
    risk_score: float | None
    grade: Grade | None
    markets: tuple[MarketRiskRecord, ...] = ()
    vault_address: str | None = None
    resolved: bool = True
    error: str | None = None
    skipped_legs: tuple[SkippedLeg, ...] = ()


@dataclass(frozen=True)
class VaultRisk:
    """V2 vault risk: adapter-level aggregates rolled up by adapter allocation."""

    vault_address: str
    total_assets_usd: float
    liquidity_usd: float | None
    asset_symbol: str | None
    risk_score: float
    grade: Grade
    adapters: tuple[AdapterRisk, ...]


@dataclass(frozen=True)
class V1VaultRisk:
    vault_address: str
    name: str | None
    liquidity_usd: float | None
    risk_score: float
    grade: Grade
    markets: tuple[MarketRiskRecord, ...]
    skipped_legs: tuple[SkippedLeg, ...] = ()


@dataclass(frozen=True)
class CuratorComponents:
    """Component scores in [0, 1]."""

    utilization: float
    rate_alignment: float
    stress_exposure: float
    withdrawal_liquidity: float
    liquidation_capacity: float


@dataclass(frozen=True)
class CuratorMetrics:
    tvl_usd: float
    utilization: float
    supply_rate: float
    benchmark_rate: float
    available_liquidity_usd: float
    potential_insolvency_usd: float
    insolvency_pct_of_tvl: float
    required_liquidity_usd: float
    liquidation_capacity_usd: float


@dataclass(frozen=True)
class CuratorRating:
    """Curator rating for one market. `rating` is None when TVL is insufficient."""

    market_id: str
    symbol: str
    status: ScoreStatus
    rating: int | None
    tier: str
    components: CuratorComponents
    metrics: CuratorMetrics
    weights: dict[str, float] = field(default_factory=dict)
    collateral_symbol: str | None = None
    raw: Market | None = None
