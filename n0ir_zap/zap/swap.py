from __future__ import annotations

from eth_utils import to_checksum_address
from loguru import logger

from n0ir_zap.core.constants.base import (
    BPS_DENOMINATOR,
    DEFAULT_SLIPPAGE_BPS,
    MAX_SLIPPAGE_BPS,
)
from n0ir_zap.core.errors import InsufficientOutput, InvalidRouteShape
from n0ir_zap.core.utils.tick_math import Q192
from n0ir_zap.zap.interfaces import Quoter, SwapRouter, TokenLedger
from n0ir_zap.zap.pricing import attempt
from n0ir_zap.zap.routing import RouteFinder
from n0ir_zap.zap.types import SwapRoute, same_address

FEE_PIPS_DENOMINATOR = 1_000_000
_ADDRESS_BYTES = 20
_TICK_SPACING_BYTES = 3


def encode_path(route: SwapRoute) -> bytes:
    """``token | int24 tickSpacing | token | ...`` as consumed by the router and quoter."""
    out = bytearray(bytes.fromhex(route.tokens[0][2:]))
    for tick_spacing, token in zip(route.tick_spacings, route.tokens[1:], strict=True):
        out += int(tick_spacing).to_bytes(_TICK_SPACING_BYTES, "big", signed=True)
        out += bytes.fromhex(token[2:])
    return bytes(out)


def decode_path(path: bytes) -> tuple[list[str], list[int]]:
    step = _ADDRESS_BYTES + _TICK_SPACING_BYTES
    if len(path) < _ADDRESS_BYTES or (len(path) - _ADDRESS_BYTES) % step:
        raise InvalidRouteShape(f"malformed path of {len(path)} bytes")

    def _address(start: int) -> str:
        return to_checksum_address("0x" + path[start : start + _ADDRESS_BYTES].hex())

    tokens = [_address(0)]
    tick_spacings: list[int] = []
    offset = _ADDRESS_BYTES
    while offset < len(path):
        ts = path[offset : offset + _TICK_SPACING_BYTES]
        tick_spacings.append(int.from_bytes(ts, "big", signed=True))
        offset += _TICK_SPACING_BYTES
        tokens.append(_address(offset))
        offset += _ADDRESS_BYTES
    return tokens, tick_spacings


def min_out_for(expected: int, slippage_bps: int) -> int:
    return int(expected) * (BPS_DENOMINATOR - int(slippage_bps)) // BPS_DENOMINATOR


class SwapExecutor:
    def __init__(
        self,
        router: SwapRouter,
        quoter: Quoter | None,
        tokens: TokenLedger,
        routes: RouteFinder,
        *,
        default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        max_slippage_bps: int = MAX_SLIPPAGE_BPS,
    ):
        self.router = router
        self.quoter = quoter
        self.tokens = tokens
        self.routes = routes
        self.default_slippage_bps = int(default_slippage_bps)
        self.max_slippage_bps = int(max_slippage_bps)
        self.logger = logger.bind(component="SwapExecutor")

    def effective_slippage_bps(self, requested_bps: int) -> int:
        requested_bps = int(requested_bps or 0)
        if requested_bps <= 0:
            return self.default_slippage_bps
        return min(requested_bps, self.max_slippage_bps)

    async def project_output(self, route: SwapRoute, amount_in: int) -> int:
        """Spot-price projection hop by hop, net of each pool's fee."""
        amount = int(amount_in)
        for token_in, pool in zip(route.tokens, route.pools, strict=False):
            state = await self.routes.pool_state(pool)
            price_x192 = state.sqrt_price_x96 * state.sqrt_price_x96
            if same_address(token_in, state.token0):
                amount = amount * price_x192 // Q192
            else:
                amount = amount * Q192 // price_x192
            amount = amount * (FEE_PIPS_DENOMINATOR - state.key.fee_pips) // (
                FEE_PIPS_DENOMINATOR
            )
        return amount

    async def expected_output(self, route: SwapRoute, amount_in: int) -> int:
        if self.quoter is not None:
            ok, quoted = await attempt(
                self.quoter.quote_exact_input, encode_path(route), int(amount_in)
            )
            if ok:
                self.logger.debug(f"quote {route.token_in}->{route.token_out}: {quoted}")
                return int(quoted)
        return await self.project_output(route, amount_in)

    async def swap(
        self,
        route: SwapRoute,
        amount_in: int,
        max_slippage_bps: int = 0,
        *,
        recipient: str,
        deadline: int,
    ) -> int:
        """Swap exactly ``amount_in`` along ``route`` and return the measured output."""
        amount_in = int(amount_in)
        if route.is_empty or amount_in == 0:
            return amount_in if route.is_empty else 0

        bps = self.effective_slippage_bps(max_slippage_bps)
        expected = await self.expected_output(route, amount_in)
        min_out = min_out_for(expected, bps)

        before = await self.tokens.balance_of(route.token_out, recipient)
        if route.hops == 1:
            await self.router.exact_input_single(
                token_in=route.token_in,
                token_out=route.token_out,
                tick_spacing=route.tick_spacings[0],
                recipient=recipient,
                deadline=deadline,
                amount_in=amount_in,
                amount_out_minimum=min_out,
            )
        else:
            await self.router.exact_input(
                path=encode_path(route),
                recipient=recipient,
                deadline=deadline,
                amount_in=amount_in,
                amount_out_minimum=min_out,
            )
        after = await self.tokens.balance_of(route.token_out, recipient)

        amount_out = after - before
        if amount_out < min_out:
            raise InsufficientOutput(amount_out, min_out)
        self.logger.info(
            f"swapped {amount_in} {route.token_in} -> {amount_out} {route.token_out} "
            f"({route.hops} hop(s), min_out={min_out}, bps={bps})"
        )
        return amount_out
