from eth_utils import to_checksum_address

# Aerodrome (Base) core addresses
# Source: https://github.com/aerodrome-finance/contracts (Base deployments)

# Tokens
BASE_USDC = to_checksum_address("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913")
BASE_WETH = to_checksum_address("0x4200000000000000000000000000000000000006")
BASE_CBBTC = to_checksum_address("0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf")

AERODROME_VOTER = to_checksum_address("0x16613524e02ad97eDfeF371bC883F2F5d6C480A5")

# Aerodrome Slipstream (concentrated liquidity)
AERODROME_SLIPSTREAM_FACTORY = to_checksum_address(
    "0x5e7BB104d84c7CB9B682AaC2F3d509f5F406809A"
)
AERODROME_SLIPSTREAM_QUOTER = to_checksum_address(
    "0x254cF9E1E6e233aa1AC962CB9B05b2cfeAaE15b0"
)
AERODROME_SLIPSTREAM_NFPM = to_checksum_address(
    "0x827922686190790b37229fd06084350E74485b72"
)
AERODROME_SLIPSTREAM_SWAP_ROUTER = to_checksum_address(
    "0xBE6D8f0d05cC4be24d5167a3eF062215bE6D18a5"
)

SLIPSTREAM_TICK_SPACING_CANDIDATES = (1, 5, 10, 20, 50, 100, 200, 500, 1000, 2000)

# Route connectors, highest priority first.
DEFAULT_ROUTE_CONNECTORS = (BASE_WETH, BASE_USDC, BASE_CBBTC)

# Spot-price oracles treat this sentinel connector as "direct quote".
ORACLE_NONE_CONNECTOR = to_checksum_address(
    "0xFFfFfFffFFfffFFfFFfFFFFFffFFFffffFfFFFfF"
)
DEFAULT_ORACLE_CONNECTORS = (
    ORACLE_NONE_CONNECTOR,
    BASE_WETH,
    BASE_USDC,
    BASE_CBBTC,
)
DEFAULT_ORACLE_THRESHOLD_FILTER = 10
