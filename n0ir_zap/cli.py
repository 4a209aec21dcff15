from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any

import click
from eth_account import Account
from loguru import logger

from n0ir_zap.adapters.fork_adapter.adapter import ForkAdapter
from n0ir_zap.adapters.oracle_adapter.adapter import SpotPriceOracleAdapter
from n0ir_zap.adapters.slipstream_adapter.adapter import SlipstreamAdapter
from n0ir_zap.core.config import (
    get_zap_settings,
    load_config,
    load_wallet_private_key,
    resolve_stake_ledger_path,
)
from n0ir_zap.core.constants.aerodrome import ORACLE_NONE_CONNECTOR
from n0ir_zap.core.constants.base import DEFAULT_DEADLINE_S
from n0ir_zap.core.errors import ZapError
from n0ir_zap.core.utils.tick_math import (
    sqrt_price_at_tick,
    sqrt_price_x96_to_price,
    tick_at_sqrt_price,
)
from n0ir_zap.core.utils.transaction import make_sign_callback
from n0ir_zap.testing.simulated_chain import build_scenario, sim_address
from n0ir_zap.zap.allocation import AllocationEngine
from n0ir_zap.zap.ledger import JsonFileStakeLedger
from n0ir_zap.zap.lifecycle import PositionLifecycleManager
from n0ir_zap.zap.pricing import UsdPriceResolver
from n0ir_zap.zap.routing import RouteFinder
from n0ir_zap.zap.types import CloseRequest, OpenRequest, PoolKey, PoolState

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {k: _jsonable(v) for k, v in asdict(value).items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(_jsonable(data), indent=2, default=str))


def _fail(exc: ZapError) -> None:
    _echo_json({"ok": False, "error": type(exc).__name__, "details": str(exc)})
    sys.exit(1)


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except ZapError as exc:
        _fail(exc)


class _FixedRateOracle:
    """PriceOracle answering from a static ``asset -> rate`` table."""

    def __init__(self, rates: dict[str, int]):
        self.rates = {k.lower(): int(v) for k, v in rates.items()}

    async def get_rate(self, src, dst, connector, threshold_filter):
        rate = self.rates.get(src.lower(), 0)
        return rate, 1 if rate else 0


def build_live_manager(
    private_key: str, config_path: str | None = None
) -> PositionLifecycleManager:
    """Wire the lifecycle manager to on-chain adapters for the configured chain."""
    settings = get_zap_settings()
    if not settings.oracle_address:
        raise click.UsageError("config.zap.oracle_address is required")

    wallet = Account.from_key(private_key).address
    sign_callback = make_sign_callback(private_key)
    adapter_config = {"chain_id": settings.chain_id}

    slipstream = SlipstreamAdapter(
        adapter_config, wallet_address=wallet, sign_callback=sign_callback
    )
    fork = ForkAdapter(adapter_config, wallet_address=wallet, sign_callback=sign_callback)
    oracle = SpotPriceOracleAdapter(adapter_config, oracle_address=settings.oracle_address)
    ledger = JsonFileStakeLedger(resolve_stake_ledger_path(settings, config_path))
    return PositionLifecycleManager(
        env=fork,
        tokens=fork,
        registry=slipstream,
        reader=slipstream,
        positions=slipstream,
        router=slipstream,
        quoter=slipstream,
        gauges=slipstream,
        gauge_resolver=slipstream,
        oracle=oracle,
        settings=settings,
        ledger=ledger,
    )


def _require_private_key() -> str:
    private_key = load_wallet_private_key()
    if not private_key:
        raise click.UsageError("config.wallet_private_key is required")
    return private_key


@click.group(name="n0ir-zap", help="Single-asset zap into and out of Slipstream positions.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to config.json.",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    ctx.obj = {"config_path": config_path}
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path:
        load_config(config_path, require_exists=True)


# -----------------------------
# Offline math
# -----------------------------


@cli.command(name="sqrt-price", help="Q64.96 sqrt price at a tick.")
@click.argument("tick", type=int)
@click.option("--decimals0", type=int, default=18, show_default=True)
@click.option("--decimals1", type=int, default=18, show_default=True)
def sqrt_price_cmd(tick: int, decimals0: int, decimals1: int) -> None:
    try:
        sqrt_price_x96 = sqrt_price_at_tick(tick)
    except ZapError as exc:
        _fail(exc)
    _echo_json(
        {
            "ok": True,
            "tick": tick,
            "sqrt_price_x96": str(sqrt_price_x96),
            "price": sqrt_price_x96_to_price(sqrt_price_x96, decimals0, decimals1),
        }
    )


@cli.command(name="tick-at", help="Greatest tick at or below a Q64.96 sqrt price.")
@click.argument("sqrt_price_x96", type=str)
def tick_at_cmd(sqrt_price_x96: str) -> None:
    try:
        value = int(sqrt_price_x96, 0)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="SQRT_PRICE_X96") from exc
    try:
        tick = tick_at_sqrt_price(value)
    except ZapError as exc:
        _fail(exc)
    _echo_json({"ok": True, "sqrt_price_x96": str(value), "tick": tick})


@cli.command(name="allocate", help="Split a deposit between the two assets of a range.")
@click.option("--amount", type=int, required=True, help="Deposit raw units.")
@click.option("--tick", type=int, required=True, help="Current pool tick.")
@click.option("--tick-lower", type=int, required=True)
@click.option("--tick-upper", type=int, required=True)
@click.option(
    "--rate0",
    type=int,
    default=10**18,
    show_default=True,
    help="Deposit raw units per 1e18 raw units of asset0.",
)
@click.option(
    "--rate1",
    type=int,
    default=10**18,
    show_default=True,
    help="Deposit raw units per 1e18 raw units of asset1.",
)
def allocate_cmd(
    amount: int, tick: int, tick_lower: int, tick_upper: int, rate0: int, rate1: int
) -> None:
    asset0, asset1 = sorted(
        (sim_address("allocate:asset0"), sim_address("allocate:asset1")),
        key=lambda a: int(a, 16),
    )
    deposit = sim_address("allocate:deposit")
    oracle = _FixedRateOracle({asset0: rate0, asset1: rate1})
    engine = AllocationEngine(
        UsdPriceResolver(oracle, deposit, [ORACLE_NONE_CONNECTOR], 0)
    )
    state = PoolState(
        key=PoolKey(pool=deposit, token0=asset0, token1=asset1, tick_spacing=1),
        sqrt_price_x96=sqrt_price_at_tick(tick),
        tick=tick,
    )
    value0, value1 = _run(
        engine.allocate(amount, asset0, asset1, tick_lower, tick_upper, state)
    )
    _echo_json({"ok": True, "value0": value0, "value1": value1})


# -----------------------------
# Simulation
# -----------------------------


@cli.command(name="simulate", help="Open then close a position on the in-memory chain.")
@click.option("--amount", type=int, default=1_000 * 10**6, show_default=True)
@click.option("--tick-lower", type=int, default=-1000, show_default=True)
@click.option("--tick-upper", type=int, default=1000, show_default=True)
@click.option("--stake/--no-stake", default=False, show_default=True)
@click.option("--hold-seconds", type=int, default=3600, show_default=True)
@click.option("--reward-rate", type=int, default=10**15, show_default=True)
def simulate_cmd(
    amount: int,
    tick_lower: int,
    tick_upper: int,
    stake: bool,
    hold_seconds: int,
    reward_rate: int,
) -> None:
    _echo_json(
        _run(
            _simulate(
                amount=amount,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                stake=stake,
                hold_seconds=hold_seconds,
                reward_rate=reward_rate,
            )
        )
    )


async def _simulate(
    *,
    amount: int,
    tick_lower: int,
    tick_upper: int,
    stake: bool,
    hold_seconds: int,
    reward_rate: int,
) -> dict[str, Any]:
    scenario = build_scenario(stable_reward_rate=reward_rate)
    chain = scenario.chain
    user = sim_address("simulate:user")
    chain.mint(scenario.usdc, user, amount)
    chain.approve(user, chain.account, scenario.usdc, amount)
    chain.approve_positions(user, chain.account)
    manager = chain.manager(scenario.usdc, connectors=[scenario.weth])

    opened = await manager.open_position(
        user,
        OpenRequest(
            pool=scenario.stable_pool,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            amount=amount,
            deadline=chain.now + DEFAULT_DEADLINE_S,
            stake=stake,
        ),
    )
    chain.advance(hold_seconds)
    closed = await manager.close_position(
        user,
        CloseRequest(
            position_id=opened.position_id,
            min_amount_out=0,
            deadline=chain.now + DEFAULT_DEADLINE_S,
        ),
    )
    return {
        "ok": True,
        "open": opened,
        "close": closed,
        "final_balance": chain.balance(scenario.usdc, user),
    }


# -----------------------------
# Live chain
# -----------------------------


@cli.command(name="find-pool", help="Look up the Slipstream pool for a token pair.")
@click.argument("token_a")
@click.argument("token_b")
def find_pool_cmd(token_a: str, token_b: str) -> None:
    _echo_json(_run(_find_pool(token_a, token_b)))


async def _find_pool(token_a: str, token_b: str) -> dict[str, Any]:
    settings = get_zap_settings()
    slipstream = SlipstreamAdapter({"chain_id": settings.chain_id})
    routes = RouteFinder(
        slipstream,
        slipstream,
        deposit_asset=settings.deposit_asset,
        tick_spacings=settings.tick_spacings,
        connectors=settings.route_connectors,
        cache_ttl_s=settings.pool_cache_ttl_s,
    )
    lookup = await routes.find_pool(token_a, token_b)
    return {"ok": True, **asdict(lookup)}


@cli.command(name="open", help="Zap the deposit asset into a new position.")
@click.option("--pool", required=True)
@click.option("--tick-lower", type=int, required=True)
@click.option("--tick-upper", type=int, required=True)
@click.option("--amount", type=int, required=True, help="Deposit raw units.")
@click.option("--slippage-bps", type=int, default=0, help="0 uses the default.")
@click.option("--stake/--no-stake", default=False, show_default=True)
@click.option("--deadline-seconds", type=int, default=DEFAULT_DEADLINE_S, show_default=True)
@click.pass_obj
def open_cmd(
    obj: dict[str, Any],
    pool: str,
    tick_lower: int,
    tick_upper: int,
    amount: int,
    slippage_bps: int,
    stake: bool,
    deadline_seconds: int,
) -> None:
    private_key = _require_private_key()
    manager = build_live_manager(private_key, obj["config_path"])

    async def _open() -> Any:
        now = await manager.env.timestamp()
        return await manager.open_position(
            manager.account,
            OpenRequest(
                pool=pool,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                amount=amount,
                deadline=now + deadline_seconds,
                max_slippage_bps=slippage_bps,
                stake=stake,
            ),
        )

    _echo_json({"ok": True, "result": _run(_open())})


@cli.command(name="close", help="Unwind a position back into the deposit asset.")
@click.argument("position_id", type=int)
@click.option("--min-amount-out", type=int, default=0, show_default=True)
@click.option("--slippage-bps", type=int, default=0, help="0 uses the default.")
@click.option("--deadline-seconds", type=int, default=DEFAULT_DEADLINE_S, show_default=True)
@click.pass_obj
def close_cmd(
    obj: dict[str, Any],
    position_id: int,
    min_amount_out: int,
    slippage_bps: int,
    deadline_seconds: int,
) -> None:
    private_key = _require_private_key()
    manager = build_live_manager(private_key, obj["config_path"])

    async def _close() -> Any:
        now = await manager.env.timestamp()
        return await manager.close_position(
            manager.account,
            CloseRequest(
                position_id=position_id,
                min_amount_out=min_amount_out,
                deadline=now + deadline_seconds,
                max_slippage_bps=slippage_bps,
            ),
        )

    _echo_json({"ok": True, "result": _run(_close())})


if __name__ == "__main__":
    cli()
