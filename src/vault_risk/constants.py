"""Protocol endpoints, asset groupings and scoring-curve constants."""

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

BASE_CHAIN_ID = 8453

MORPHO_API_URL = "https://api.morpho.org/graphql"
DEFAULT_BASE_RPC_URL = "https://mainnet.base.org"
ALCHEMY_BASE_RPC_TEMPLATE = "https://base-mainnet.g.alchemy.com/v2/{api_key}"

DEFAULT_ADAPTER_LIMIT = 20
DEFAULT_POSITION_LIMIT = 20
DEFAULT_MARKET_LIMIT = 200

# Fixed-point scale used for LLTV and IRM parameters
WAD = 10**18

# --- oracle freshness tiers (hours -> score) ---
ORACLE_OPAQUE_SCORE = 20.0
ORACLE_FRESH_HOURS = 1.0
ORACLE_DAY_HOURS = 24.0
ORACLE_WEEK_HOURS = 168.0
ORACLE_MONTH_HOURS = 720.0
ORACLE_FRESH_SCORE = 100.0
ORACLE_DAY_SCORE = 80.0
ORACLE_WEEK_SCORE = 60.0

# Getter order tried when a composite oracle does not expose its feed directly
ORACLE_FEED_GETTERS: tuple[tuple[str, tuple[int, ...]], ...] = (
    ("getBaseFeed", (1,)),
    ("getBaseFeed", (0,)),
    ("baseFeed", ()),
    ("feeds", (1,)),
    ("baseFeeds", (1,)),
)

DEFAULT_TARGET_UTILIZATION = 0.9

# --- stress test ---
CORRELATED_SHOCK = 0.025
UNCORRELATED_SHOCK = 0.05

CORRELATED_ASSET_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"ETH", "WETH", "STETH", "WSTETH", "RETH", "CBETH"}),
    frozenset({"BTC", "WBTC", "CBBTC", "LBTC"}),
    # Stables only pair with their own bridged variants
    frozenset({"USDC", "USDC.E", "USDBC"}),
    frozenset({"USDT", "USDT.E"}),
)

# --- component curves ---
UTILIZATION_UNDERSHOOT_PENALTY = 10.0
HEADROOM_COMFORT_RATIO = 0.25
HEADROOM_SOLVENT_FLOOR = 70.0
HEADROOM_UNDERWATER_RATIO = 0.5

# --- grading ---
GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (93.0, "A+"),
    (90.0, "A"),
    (87.0, "A-"),
    (84.0, "B+"),
    (80.0, "B"),
    (77.0, "B-"),
    (74.0, "C+"),
    (70.0, "C"),
    (65.0, "C-"),
    (60.0, "D"),
)

BAD_DEBT_OVERRIDE_USD = 1.0
IDLE_ALLOCATION_EPSILON_USD = 1.0
UNKNOWN_SYMBOL = "Unknown"

# --- curator rating ---
LARGE_MARKET_TVL_USD = 50_000_000.0
VERY_LARGE_MARKET_TVL_USD = 500_000_000.0
HUGE_MARKET_TVL_USD = 2_000_000_000.0
LARGE_MARKET_TOLERANCE = 0.20
HUGE_MARKET_TOLERANCE = 0.35
UTILIZATION_SAFE_MARGIN = 0.98

CURATOR_TIERS: tuple[tuple[int, str], ...] = (
    (85, "Prime"),
    (70, "Balanced"),
    (55, "Watch"),
)
HIGH_RISK_TIER = "High Risk"
INSUFFICIENT_TVL_TIER = "Insufficient TVL"
