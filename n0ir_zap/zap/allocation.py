from __future__ import annotations

from loguru import logger

from n0ir_zap.core.utils.tick_math import (
    amount1_for_liquidity,
    liquidity_for_amount0,
    sqrt_price_at_tick,
)
from n0ir_zap.zap.pricing import UsdPriceResolver
from n0ir_zap.zap.types import PoolState


def split_by_tick(total_value: int, tick: int, tick_lower: int, tick_upper: int) -> int:
    """Linear share of ``total_value`` for asset0 given the tick's place in the range."""
    return int(total_value) * (tick_upper - tick) // (tick_upper - tick_lower)


def rescale(total_value: int, value0: int, value1: int) -> tuple[int, int]:
    """Scale ``(value0, value1)`` to sum to ``total_value``; rounding goes to asset0."""
    denom = value0 + value1
    if denom == 0:
        half = total_value // 2
        return total_value - half, half
    out1 = total_value * value1 // denom
    return total_value - out1, out1


class AllocationEngine:
    def __init__(self, prices: UsdPriceResolver):
        self.prices = prices
        self.logger = logger.bind(component="AllocationEngine")

    async def allocate(
        self,
        total_value: int,
        asset0: str,
        asset1: str,
        tick_lower: int,
        tick_upper: int,
        pool_state: PoolState,
    ) -> tuple[int, int]:
        """Split ``total_value`` deposit units into the value to hold in each asset.

        ``(value0, value1)`` always sums to ``total_value``.
        """
        total_value = int(total_value)
        tick = int(pool_state.tick)

        if tick_upper == tick_lower:
            half = total_value // 2
            return half, total_value - half
        if tick < tick_lower:
            return total_value, 0
        if tick >= tick_upper:
            return 0, total_value

        value0 = split_by_tick(total_value, tick, tick_lower, tick_upper)
        amount0 = await self.prices.to_native(asset0, value0)

        sqrt_p = int(pool_state.sqrt_price_x96)
        liquidity = liquidity_for_amount0(sqrt_p, sqrt_price_at_tick(tick_upper), amount0)
        # The pool rounds amounts owed up; size asset1 the same way.
        amount1 = amount1_for_liquidity(
            sqrt_price_at_tick(tick_lower), sqrt_p, liquidity, round_up=True
        )
        value1 = await self.prices.to_deposit(asset1, amount1)

        out0, out1 = rescale(total_value, value0, value1)
        self.logger.debug(
            f"allocate total={total_value} tick={tick} range=[{tick_lower}, {tick_upper}] "
            f"amount0={amount0} amount1={amount1} -> ({out0}, {out1})"
        )
        return out0, out1
