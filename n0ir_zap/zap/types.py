from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from eth_utils import to_checksum_address

from n0ir_zap.core.errors import InvalidRouteShape


def sort_key(address: str) -> int:
    return int(address, 16)


def canonical_pair(token_a: str, token_b: str) -> tuple[str, str]:
    a = to_checksum_address(token_a)
    b = to_checksum_address(token_b)
    return (a, b) if sort_key(a) <= sort_key(b) else (b, a)


def same_address(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


@dataclass(frozen=True)
class PoolKey:
    pool: str
    token0: str
    token1: str
    tick_spacing: int
    fee_pips: int = 0

    def other(self, token: str) -> str:
        if same_address(token, self.token0):
            return self.token1
        if same_address(token, self.token1):
            return self.token0
        raise ValueError(f"{token} is not a token of pool {self.pool}")


@dataclass(frozen=True)
class PoolState:
    key: PoolKey
    sqrt_price_x96: int
    tick: int

    @property
    def pool(self) -> str:
        return self.key.pool

    @property
    def token0(self) -> str:
        return self.key.token0

    @property
    def token1(self) -> str:
        return self.key.token1

    @property
    def tick_spacing(self) -> int:
        return self.key.tick_spacing


@dataclass(frozen=True)
class PositionInfo:
    position_id: int
    token0: str
    token1: str
    tick_spacing: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    tokens_owed0: int = 0
    tokens_owed1: int = 0


@dataclass(frozen=True)
class SwapRoute:
    """Ordered hop sequence: ``tokens[i] -> tokens[i+1]`` through ``pools[i]``.

    A single-token route with no pools means no swap is needed.
    """

    tokens: tuple[str, ...]
    pools: tuple[str, ...] = ()
    tick_spacings: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "pools", tuple(self.pools))
        object.__setattr__(
            self, "tick_spacings", tuple(int(ts) for ts in self.tick_spacings)
        )
        if not self.tokens:
            raise InvalidRouteShape("route has no tokens")
        if len(self.tokens) != len(self.pools) + 1:
            raise InvalidRouteShape(
                f"route has {len(self.tokens)} tokens for {len(self.pools)} pools"
            )
        if len(self.tick_spacings) != len(self.pools):
            raise InvalidRouteShape(
                f"route has {len(self.tick_spacings)} tick spacings "
                f"for {len(self.pools)} pools"
            )

    @classmethod
    def empty(cls, token: str) -> SwapRoute:
        return cls(tokens=(token,))

    @property
    def token_in(self) -> str:
        return self.tokens[0]

    @property
    def token_out(self) -> str:
        return self.tokens[-1]

    @property
    def is_empty(self) -> bool:
        return not self.pools

    @property
    def hops(self) -> int:
        return len(self.pools)


@dataclass(frozen=True)
class PoolLookup:
    pool: str
    tick_spacing: int
    exists: bool


class RouteStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    NO_ROUTE = "NO_ROUTE"


class OpenStage(str, Enum):
    IDLE = "Idle"
    FUNDED = "Funded"
    ALLOCATED = "Allocated"
    SWAPPED = "Swapped"
    MINTED = "Minted"
    STAKED = "Staked"
    RETURNED = "Returned"


class CloseStage(str, Enum):
    IDLE = "Idle"
    UNSTAKED = "Unstaked"
    COLLECTED = "Collected"
    LIQUIDITY_REMOVED = "LiquidityRemoved"
    BURNED = "Burned"
    SWAPPED_BACK = "SwappedBack"
    SETTLED = "Settled"


@dataclass(frozen=True)
class OpenRequest:
    pool: str
    tick_lower: int
    tick_upper: int
    amount: int
    deadline: int
    max_slippage_bps: int = 0
    stake: bool = False
    route0: SwapRoute | None = None
    route1: SwapRoute | None = None


@dataclass(frozen=True)
class OpenResult:
    position_id: int
    liquidity: int
    token0: str
    token1: str
    amount0: int
    amount1: int
    refund0: int
    refund1: int
    staked: bool
    stage: OpenStage


@dataclass(frozen=True)
class OpenPreview:
    value0: int
    value1: int
    route0: SwapRoute | None
    route1: SwapRoute | None
    status: RouteStatus
    pool_state: PoolState


@dataclass(frozen=True)
class CloseRequest:
    position_id: int
    min_amount_out: int
    deadline: int
    max_slippage_bps: int = 0
    route0: SwapRoute | None = None
    route1: SwapRoute | None = None


@dataclass(frozen=True)
class CloseResult:
    position_id: int
    amount_out: int
    reward_token: str | None
    reward_amount: int
    fees0: int
    fees1: int
    stage: CloseStage
    was_staked: bool = False
    leg_amounts: tuple[int, int] = field(default=(0, 0))
