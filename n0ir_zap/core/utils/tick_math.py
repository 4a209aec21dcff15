"""Concentrated-liquidity math helpers.

Tick <-> sqrt-price conversion is bit-exact with the on-chain TickMath library
(Q64.96 results, ceiling rounding), so values computed here agree with what
pools and position managers compute independently. The liquidity helpers
follow LiquidityAmounts / SqrtPriceMath integer rounding.
"""

from __future__ import annotations

import math

from n0ir_zap.core.errors import InvalidRange, TickOutOfRange

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

Q32 = 1 << 32
Q96 = 1 << 96
Q192 = 1 << 192
MAX_UINT256 = (1 << 256) - 1
TICK_BASE = 1.0001

# One multiplier per bit of |tick| above bit 0, in ascending bit order.
_TICK_BIT_MULTIPLIERS = (
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)


def sqrt_price_at_tick(tick: int) -> int:
    """Return sqrt(1.0001^tick) as a Q64.96 fixed-point integer.

    Raises ``TickOutOfRange`` when ``|tick| > MAX_TICK``.
    """
    tick = int(tick)
    abs_tick = -tick if tick < 0 else tick
    if abs_tick > MAX_TICK:
        raise TickOutOfRange(tick, MIN_TICK, MAX_TICK)

    if abs_tick & 0x1:
        ratio = 0xFFFCB933BD6FAD37AA2D162D1A594001
    else:
        ratio = 0x100000000000000000000000000000000

    for bit, multiplier in _TICK_BIT_MULTIPLIERS:
        if abs_tick & bit:
            ratio = (ratio * multiplier) >> 128

    # The table computes 1/sqrt(1.0001)^|tick|; positive ticks take the reciprocal.
    if tick > 0:
        ratio = MAX_UINT256 // ratio

    sqrt_price_x96 = ratio >> 32
    if ratio % Q32:
        sqrt_price_x96 += 1
    return sqrt_price_x96


def tick_at_sqrt_price(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt price is <= ``sqrt_price_x96``."""
    sqrt_price_x96 = int(sqrt_price_x96)
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 > MAX_SQRT_RATIO:
        raise TickOutOfRange(sqrt_price_x96, MIN_SQRT_RATIO, MAX_SQRT_RATIO)

    lo, hi = MIN_TICK, MAX_TICK
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if sqrt_price_at_tick(mid) <= sqrt_price_x96:
            lo = mid
        else:
            hi = mid - 1
    return lo


def sqrt_price_x96_to_price(sqrtpx96: int, decimals0: int, decimals1: int) -> float:
    if sqrtpx96 <= 0:
        return 0.0
    p = (sqrtpx96 / Q96) ** 2
    return p * (10 ** (decimals0 - decimals1))


def tick_to_price(tick: int) -> float:
    return TICK_BASE**tick


def price_to_tick(price: float) -> int:
    return math.floor(math.log(price, TICK_BASE))


# -- tick spacing ------------------------------------------------------------


def floor_tick_to_spacing(tick: int, spacing: int) -> int:
    return (int(tick) // int(spacing)) * int(spacing)


def ceil_tick_to_spacing(tick: int, spacing: int) -> int:
    spacing = int(spacing)
    return int((-(-int(tick) // spacing)) * spacing)


def is_aligned(tick: int, spacing: int) -> bool:
    return spacing > 0 and int(tick) % int(spacing) == 0


def validate_tick_range(tick_lower: int, tick_upper: int, spacing: int) -> None:
    if tick_lower >= tick_upper:
        raise InvalidRange(tick_lower, tick_upper, "tick_lower must be < tick_upper")
    if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
        raise InvalidRange(
            tick_lower, tick_upper, f"ticks must be within [{MIN_TICK}, {MAX_TICK}]"
        )
    if not (is_aligned(tick_lower, spacing) and is_aligned(tick_upper, spacing)):
        raise InvalidRange(
            tick_lower, tick_upper, f"ticks must be multiples of spacing {spacing}"
        )


# -- fixed-point helpers -----------------------------------------------------


def mul_div(a: int, b: int, denom: int) -> int:
    if denom == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return (int(a) * int(b)) // int(denom)


def mul_div_rounding_up(a: int, b: int, denom: int) -> int:
    if denom == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return -((-int(a) * int(b)) // int(denom))


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    a, b = int(sqrt_a), int(sqrt_b)
    return (b, a) if a > b else (a, b)


# -- liquidity <-> amounts ---------------------------------------------------


def liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a == b:
        return 0
    intermediate = mul_div(a, b, Q96)
    return mul_div(amount0, intermediate, b - a)


def liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a == b:
        return 0
    return mul_div(amount1, Q96, b - a)


def liquidity_for_amounts(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, amount0: int, amount1: int
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if sqrt_p <= a:
        return liquidity_for_amount0(a, b, amount0)
    if sqrt_p < b:
        l0 = liquidity_for_amount0(sqrt_p, b, amount0)
        l1 = liquidity_for_amount1(a, sqrt_p, amount1)
        return min(l0, l1)
    return liquidity_for_amount1(a, b, amount1)


def amount0_for_liquidity(
    sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a == 0:
        raise ZeroDivisionError("sqrt price bound is zero")
    numerator1 = int(liquidity) << 96
    numerator2 = b - a
    if round_up:
        return -(-mul_div_rounding_up(numerator1, numerator2, b) // a)
    return mul_div(numerator1, numerator2, b) // a


def amount1_for_liquidity(
    sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if round_up:
        return mul_div_rounding_up(liquidity, b - a, Q96)
    return mul_div(liquidity, b - a, Q96)


def amounts_for_liquidity(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> tuple[int, int]:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if sqrt_p <= a:
        return amount0_for_liquidity(a, b, liquidity, round_up=round_up), 0
    if sqrt_p < b:
        return (
            amount0_for_liquidity(sqrt_p, b, liquidity, round_up=round_up),
            amount1_for_liquidity(a, sqrt_p, liquidity, round_up=round_up),
        )
    return 0, amount1_for_liquidity(a, b, liquidity, round_up=round_up)


def slippage_min(amount: int, slippage_bps: int) -> int:
    bps = max(0, min(10_000, int(slippage_bps)))
    return max(0, (int(amount) * (10_000 - bps)) // 10_000)
