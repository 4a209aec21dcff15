from __future__ import annotations

import pytest

from n0ir_zap.core.errors import InsufficientOutput, InvalidRouteShape
from n0ir_zap.zap.routing import RouteFinder
from n0ir_zap.zap.swap import SwapExecutor, decode_path, encode_path, min_out_for
from n0ir_zap.zap.types import SwapRoute

A = "0x" + "0a" * 20
B = "0x" + "0b" * 20
C = "0x" + "0c" * 20
POOL = "0x" + "cc" * 20


def _executor(scenario, *, quoter=True, router=None) -> SwapExecutor:
    chain = scenario.chain
    routes = RouteFinder(
        chain.registry,
        chain.reader,
        deposit_asset=scenario.usdc,
        tick_spacings=[10, 100, 200],
        connectors=[scenario.usdc],
    )
    return SwapExecutor(
        router or chain.router,
        chain.quoter if quoter else None,
        chain.tokens,
        routes,
        default_slippage_bps=100,
        max_slippage_bps=1000,
    )


class _SilentRouter:
    """Accepts every swap and delivers nothing."""

    async def exact_input_single(self, **kwargs):
        return None

    async def exact_input(self, **kwargs):
        return None


def test_path_encoding_layout():
    route = SwapRoute(tokens=(A, B, C), pools=(POOL, POOL), tick_spacings=(-1, 200))
    path = encode_path(route)
    assert len(path) == 20 * 3 + 3 * 2
    assert path[20:23] == b"\xff\xff\xff"
    tokens, tick_spacings = decode_path(path)
    assert [t.lower() for t in tokens] == [A, B, C]
    assert tick_spacings == [-1, 200]


def test_decode_path_rejects_malformed():
    with pytest.raises(InvalidRouteShape):
        decode_path(b"\x00" * 25)


def test_min_out_for():
    assert min_out_for(10_000, 100) == 9_900
    assert min_out_for(999, 50) == 994


def test_effective_slippage(sim_scenario):
    executor = _executor(sim_scenario)
    assert executor.effective_slippage_bps(0) == 100
    assert executor.effective_slippage_bps(30) == 30
    assert executor.effective_slippage_bps(5000) == 1000


@pytest.mark.asyncio
async def test_empty_route_and_zero_amount(sim_scenario):
    executor = _executor(sim_scenario)
    account = sim_scenario.chain.account
    empty = SwapRoute.empty(sim_scenario.usdc)
    assert await executor.swap(empty, 77, recipient=account, deadline=2**32) == 77

    route = SwapRoute(
        tokens=(sim_scenario.usdc, sim_scenario.usdx),
        pools=(sim_scenario.stable_pool,),
        tick_spacings=(10,),
    )
    assert await executor.swap(route, 0, recipient=account, deadline=2**32) == 0
    assert "router.exact_input_single" not in sim_scenario.chain.calls


@pytest.mark.asyncio
async def test_single_hop_swap_measures_balance_delta(sim_scenario):
    s = sim_scenario
    chain = s.chain
    chain.mint(s.usdc, chain.account, 1_000 * 10**6)
    route = SwapRoute(tokens=(s.usdc, s.usdx), pools=(s.stable_pool,), tick_spacings=(10,))

    out = await _executor(s).swap(
        route, 1_000 * 10**6, recipient=chain.account, deadline=2**32
    )
    assert out == chain.balance(s.usdx, chain.account)
    # 1bp fee on a deep 1:1 pool
    assert 999 * 10**6 <= out < 1_000 * 10**6


@pytest.mark.asyncio
async def test_two_hop_swap_uses_path(sim_scenario):
    s = sim_scenario
    chain = s.chain
    chain.mint(s.usdx, chain.account, 3_000 * 10**6)
    route = SwapRoute(
        tokens=(s.usdx, s.usdc, s.weth),
        pools=(s.stable_pool, s.weth_pool),
        tick_spacings=(10, 100),
    )
    out = await _executor(s).swap(
        route, 3_000 * 10**6, recipient=chain.account, deadline=2**32
    )
    assert "router.exact_input" in chain.calls
    assert out == pytest.approx(10**18, rel=0.02)


@pytest.mark.asyncio
async def test_expected_output_is_the_quote(sim_scenario):
    s = sim_scenario
    chain = s.chain
    route = SwapRoute(
        tokens=(s.usdx, s.usdc, s.weth),
        pools=(s.stable_pool, s.weth_pool),
        tick_spacings=(10, 100),
    )
    quoted = await chain.quoter.quote_exact_input(encode_path(route), 3_000 * 10**6)
    assert quoted > 0

    executor = _executor(s)
    assert await executor.expected_output(route, 3_000 * 10**6) == quoted

    # the quote prices the swap exactly, so it also clears the minimum
    chain.mint(s.usdx, chain.account, 3_000 * 10**6)
    out = await executor.swap(route, 3_000 * 10**6, recipient=chain.account, deadline=2**32)
    assert out == quoted


@pytest.mark.asyncio
async def test_quote_failure_falls_back_to_projection(sim_scenario):
    s = sim_scenario
    route = SwapRoute(tokens=(s.usdc, s.weth), pools=(s.weth_pool,), tick_spacings=(100,))
    executor = _executor(s)
    projection = await executor.project_output(route, 3_000 * 10**6)

    quoted = await executor.expected_output(route, 3_000 * 10**6)
    # price impact keeps the quote under the spot projection
    assert quoted < projection

    s.chain.fail_on("quoter.quote_exact_input")
    fallback = await executor.expected_output(route, 3_000 * 10**6)
    assert fallback == projection
    assert fallback == pytest.approx(quoted, rel=0.02)


@pytest.mark.asyncio
async def test_short_delivery_raises_insufficient_output(sim_scenario):
    s = sim_scenario
    route = SwapRoute(tokens=(s.usdc, s.usdx), pools=(s.stable_pool,), tick_spacings=(10,))
    executor = _executor(s, router=_SilentRouter())
    with pytest.raises(InsufficientOutput) as exc_info:
        await executor.swap(route, 10**6, recipient=s.chain.account, deadline=2**32)
    assert exc_info.value.amount_out == 0
    assert exc_info.value.min_out > 0
