"""Call contracts the zap core consumes.

Implementations act on behalf of a single zap account (``ExecutionEnvironment.account``):
token transfers, swaps and position writes all originate from that account.
Both the web3 adapters and the in-memory simulated chain satisfy these protocols.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from n0ir_zap.zap.types import PoolKey, PositionInfo


@runtime_checkable
class TokenLedger(Protocol):
    async def balance_of(self, token: str, account: str) -> int: ...

    async def transfer(self, token: str, to: str, amount: int) -> None: ...

    async def transfer_from(
        self, token: str, owner: str, to: str, amount: int
    ) -> None: ...


@runtime_checkable
class PoolRegistry(Protocol):
    async def get_pool(self, token_a: str, token_b: str, tick_spacing: int) -> str:
        """Return the pool address, or the zero address if none exists."""
        ...


@runtime_checkable
class PoolReader(Protocol):
    async def pool_key(self, pool: str) -> PoolKey: ...

    async def slot0(self, pool: str) -> tuple[int, int]:
        """Return ``(sqrt_price_x96, tick)``."""
        ...


@runtime_checkable
class PositionRegistry(Protocol):
    async def mint(
        self,
        *,
        token0: str,
        token1: str,
        tick_spacing: int,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
        amount0_min: int,
        amount1_min: int,
        recipient: str,
        deadline: int,
    ) -> tuple[int, int, int, int]:
        """Return ``(position_id, liquidity, amount0, amount1)``."""
        ...

    async def decrease_liquidity(
        self,
        position_id: int,
        liquidity: int,
        amount0_min: int,
        amount1_min: int,
        deadline: int,
    ) -> tuple[int, int]: ...

    async def collect(self, position_id: int, recipient: str) -> tuple[int, int]: ...

    async def burn(self, position_id: int) -> None: ...

    async def owner_of(self, position_id: int) -> str: ...

    async def positions(self, position_id: int) -> PositionInfo: ...

    async def transfer_position(self, owner: str, to: str, position_id: int) -> None: ...


@runtime_checkable
class SwapRouter(Protocol):
    async def exact_input_single(
        self,
        *,
        token_in: str,
        token_out: str,
        tick_spacing: int,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
    ) -> None: ...

    async def exact_input(
        self,
        *,
        path: bytes,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
    ) -> None: ...


@runtime_checkable
class Quoter(Protocol):
    async def quote_exact_input(self, path: bytes, amount_in: int) -> int: ...


@runtime_checkable
class GaugeResolver(Protocol):
    async def gauge_for_pool(self, pool: str) -> str | None: ...


@runtime_checkable
class IncentiveGauge(Protocol):
    async def deposit(self, gauge: str, position_id: int) -> None: ...

    async def withdraw(self, gauge: str, position_id: int) -> None: ...

    async def earned(self, gauge: str, account: str, position_id: int) -> int: ...

    async def get_reward(self, gauge: str, position_id: int) -> None: ...

    async def reward_token(self, gauge: str) -> str: ...


@runtime_checkable
class PriceOracle(Protocol):
    async def get_rate(
        self, src: str, dst: str, connector: str, threshold_filter: int
    ) -> tuple[int, int]:
        """Return ``(rate, weight)``; ``rate`` is dst raw units per 1e18 src raw units."""
        ...


@runtime_checkable
class ExecutionEnvironment(Protocol):
    account: str

    async def snapshot(self) -> Any: ...

    async def revert(self, snapshot_id: Any) -> None: ...

    async def timestamp(self) -> int: ...
