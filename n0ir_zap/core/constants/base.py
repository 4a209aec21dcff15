GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
SUGGESTED_GAS_PRICE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# Slippage is expressed in basis points throughout the zap core.
DEFAULT_SLIPPAGE_BPS = 100
MAX_SLIPPAGE_BPS = 1_000
BPS_DENOMINATOR = 10_000

DEFAULT_POOL_CACHE_TTL_S = 300
DEFAULT_DEADLINE_S = 600

DEFAULT_TRANSACTION_TIMEOUT = 180  # seconds

MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1
