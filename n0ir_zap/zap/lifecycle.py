"""Atomic open/close of a concentrated-liquidity position from a single deposit asset.

Open:  Idle -> Funded -> Allocated -> Swapped -> Minted -> {Staked | Returned}
Close: Idle -> Unstaked? -> Collected -> LiquidityRemoved -> Burned -> SwappedBack -> Settled

Each operation runs between ``ExecutionEnvironment.snapshot()`` and either a
normal return or ``revert()``; the stake ledger is snapshotted alongside, so a
failure at any stage leaves no retained effect.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

from eth_utils import to_checksum_address
from loguru import logger

from n0ir_zap.core.config import ZapSettings
from n0ir_zap.core.constants import ZERO_ADDRESS
from n0ir_zap.core.errors import (
    ExpiredDeadline,
    InsufficientFunds,
    InsufficientOutput,
    InvalidRouteShape,
    NoRoute,
    NotBeneficialOwner,
    ReentrantCall,
    StakingUnavailable,
    Unauthorized,
    ZeroAmount,
)
from n0ir_zap.core.utils.tick_math import (
    amounts_for_liquidity,
    slippage_min,
    sqrt_price_at_tick,
    validate_tick_range,
)
from n0ir_zap.zap.allocation import AllocationEngine
from n0ir_zap.zap.interfaces import (
    ExecutionEnvironment,
    GaugeResolver,
    IncentiveGauge,
    PoolReader,
    PoolRegistry,
    PositionRegistry,
    PriceOracle,
    Quoter,
    SwapRouter,
    TokenLedger,
)
from n0ir_zap.zap.ledger import StakeLedger
from n0ir_zap.zap.pricing import UsdPriceResolver
from n0ir_zap.zap.routing import RouteFinder
from n0ir_zap.zap.swap import SwapExecutor
from n0ir_zap.zap.types import (
    CloseRequest,
    CloseResult,
    CloseStage,
    OpenPreview,
    OpenRequest,
    OpenResult,
    OpenStage,
    PoolState,
    RouteStatus,
    SwapRoute,
    same_address,
)


class PositionLifecycleManager:
    def __init__(
        self,
        *,
        env: ExecutionEnvironment,
        tokens: TokenLedger,
        registry: PoolRegistry,
        reader: PoolReader,
        positions: PositionRegistry,
        router: SwapRouter,
        quoter: Quoter | None,
        gauges: IncentiveGauge,
        gauge_resolver: GaugeResolver,
        oracle: PriceOracle,
        settings: ZapSettings | None = None,
        ledger: StakeLedger | None = None,
    ):
        self.settings = settings or ZapSettings()
        self.env = env
        self.tokens = tokens
        self.positions = positions
        self.gauges = gauges
        self.gauge_resolver = gauge_resolver
        self.deposit_asset = self.settings.deposit_asset

        self.prices = UsdPriceResolver(
            oracle,
            self.deposit_asset,
            self.settings.oracle_connectors,
            self.settings.oracle_threshold_filter,
        )
        self.allocation = AllocationEngine(self.prices)
        self.routes = RouteFinder(
            registry,
            reader,
            deposit_asset=self.deposit_asset,
            tick_spacings=self.settings.tick_spacings,
            connectors=self.settings.route_connectors,
            cache_ttl_s=self.settings.pool_cache_ttl_s,
        )
        self.swaps = SwapExecutor(
            router,
            quoter,
            tokens,
            self.routes,
            default_slippage_bps=self.settings.default_slippage_bps,
            max_slippage_bps=self.settings.max_slippage_bps,
        )
        self.ledger = ledger if ledger is not None else StakeLedger()

        self._lock = asyncio.Lock()
        self._active: ContextVar[bool] = ContextVar(
            f"n0ir_zap_active_{id(self)}", default=False
        )
        self.logger = logger.bind(component="PositionLifecycleManager")

    @property
    def account(self) -> str:
        return self.env.account

    # -- atomicity ----------------------------------------------------------

    @asynccontextmanager
    async def _atomic(self, operation: str) -> AsyncIterator[None]:
        if self._active.get():
            raise ReentrantCall(f"{operation} re-entered while another call is running")
        async with self._lock:
            token = self._active.set(True)
            try:
                snapshot_id = await self.env.snapshot()
                ledger_snapshot = self.ledger.snapshot()
                try:
                    yield
                except BaseException as exc:
                    self.logger.warning(f"{operation} failed, reverting: {exc!r}")
                    await self.env.revert(snapshot_id)
                    self.ledger.restore(ledger_snapshot)
                    raise
            finally:
                self._active.reset(token)

    async def _check_deadline(self, deadline: int) -> None:
        now = await self.env.timestamp()
        if now > int(deadline):
            raise ExpiredDeadline(deadline, now)

    def _stage(self, operation: str, stage: OpenStage | CloseStage, **ctx) -> None:
        details = " ".join(f"{k}={v}" for k, v in ctx.items())
        self.logger.info(f"{operation} -> {stage.value} {details}".rstrip())

    # -- helpers ------------------------------------------------------------

    def _check_route(self, route: SwapRoute, token_in: str, token_out: str) -> None:
        if not (
            same_address(route.token_in, token_in)
            and same_address(route.token_out, token_out)
        ):
            raise InvalidRouteShape(
                f"route {route.token_in}->{route.token_out} does not connect "
                f"{token_in} to {token_out}"
            )

    async def _open_routes(
        self, request: OpenRequest, state: PoolState
    ) -> tuple[SwapRoute | None, SwapRoute | None, RouteStatus]:
        route0, route1, status = await self.routes.find_route_for_open(
            state.token0, state.token1, state.pool, state.tick_spacing
        )
        if request.route0 is not None:
            self._check_route(request.route0, self.deposit_asset, state.token0)
            route0 = request.route0
        if request.route1 is not None:
            self._check_route(request.route1, self.deposit_asset, state.token1)
            route1 = request.route1
        return route0, route1, status

    async def _close_routes(
        self, request: CloseRequest, state: PoolState
    ) -> tuple[SwapRoute | None, SwapRoute | None]:
        route0, route1, _ = await self.routes.find_route_for_close(
            state.token0, state.token1, state.pool, state.tick_spacing
        )
        if request.route0 is not None:
            self._check_route(request.route0, state.token0, self.deposit_asset)
            route0 = request.route0
        if request.route1 is not None:
            self._check_route(request.route1, state.token1, self.deposit_asset)
            route1 = request.route1
        return route0, route1

    async def _swap_leg(
        self,
        route: SwapRoute | None,
        token_in: str,
        token_out: str,
        amount_in: int,
        slippage_bps: int,
        deadline: int,
    ) -> int:
        if same_address(token_in, token_out) or amount_in == 0:
            return amount_in if same_address(token_in, token_out) else 0
        if route is None:
            raise NoRoute(token_in, token_out)
        return await self.swaps.swap(
            route, amount_in, slippage_bps, recipient=self.account, deadline=deadline
        )

    async def _pool_for_position(self, token0: str, token1: str, tick_spacing: int) -> str:
        pool = await self.routes.get_pool(token0, token1, tick_spacing)
        if same_address(pool, ZERO_ADDRESS):
            raise NoRoute(token0, token1)
        return pool

    # -- read-only ------------------------------------------------------------

    def staked_owner(self, position_id: int) -> str | None:
        return self.ledger.owner_of(position_id)

    async def preview_open(self, request: OpenRequest) -> OpenPreview:
        """Allocation and routes ``open_position`` would use, without moving value."""
        if request.amount <= 0:
            raise ZeroAmount("amount must be positive")
        state = await self.routes.pool_state(request.pool)
        validate_tick_range(request.tick_lower, request.tick_upper, state.tick_spacing)
        value0, value1 = await self.allocation.allocate(
            request.amount,
            state.token0,
            state.token1,
            request.tick_lower,
            request.tick_upper,
            state,
        )
        route0, route1, status = await self._open_routes(request, state)
        return OpenPreview(
            value0=value0,
            value1=value1,
            route0=route0,
            route1=route1,
            status=status,
            pool_state=state,
        )

    # -- open -----------------------------------------------------------------

    async def open_position(self, caller: str, request: OpenRequest) -> OpenResult:
        caller = to_checksum_address(caller)
        async with self._atomic("open"):
            await self._check_deadline(request.deadline)
            if int(request.amount) <= 0:
                raise ZeroAmount("amount must be positive")

            state = await self.routes.pool_state(request.pool)
            validate_tick_range(request.tick_lower, request.tick_upper, state.tick_spacing)
            gauge = None
            if request.stake:
                gauge = await self.gauge_resolver.gauge_for_pool(state.pool)
                if not gauge or same_address(gauge, ZERO_ADDRESS):
                    raise StakingUnavailable(f"pool {state.pool} has no gauge")

            balance = await self.tokens.balance_of(self.deposit_asset, caller)
            if balance < int(request.amount):
                raise InsufficientFunds(
                    f"{caller} holds {balance} of {self.deposit_asset}, "
                    f"needs {request.amount}"
                )
            await self.tokens.transfer_from(
                self.deposit_asset, caller, self.account, int(request.amount)
            )
            self._stage("open", OpenStage.FUNDED, caller=caller, amount=request.amount)

            value0, value1 = await self.allocation.allocate(
                request.amount,
                state.token0,
                state.token1,
                request.tick_lower,
                request.tick_upper,
                state,
            )
            self._stage("open", OpenStage.ALLOCATED, value0=value0, value1=value1)

            bps = self.swaps.effective_slippage_bps(request.max_slippage_bps)
            route0, route1, _ = await self._open_routes(request, state)
            amount0 = await self._swap_leg(
                route0, self.deposit_asset, state.token0, value0, bps, request.deadline
            )
            amount1 = await self._swap_leg(
                route1, self.deposit_asset, state.token1, value1, bps, request.deadline
            )
            self._stage("open", OpenStage.SWAPPED, amount0=amount0, amount1=amount1)

            position_id, liquidity, used0, used1 = await self.positions.mint(
                token0=state.token0,
                token1=state.token1,
                tick_spacing=state.tick_spacing,
                tick_lower=request.tick_lower,
                tick_upper=request.tick_upper,
                amount0_desired=amount0,
                amount1_desired=amount1,
                amount0_min=slippage_min(amount0, bps),
                amount1_min=slippage_min(amount1, bps),
                recipient=self.account,
                deadline=request.deadline,
            )
            self._stage(
                "open", OpenStage.MINTED, position_id=position_id, liquidity=liquidity
            )

            if gauge is not None:
                await self.gauges.deposit(gauge, position_id)
                self.ledger.record(position_id, caller)
                stage = OpenStage.STAKED
            else:
                await self.positions.transfer_position(self.account, caller, position_id)
                stage = OpenStage.RETURNED
            self._stage("open", stage, position_id=position_id)

            refund0 = amount0 - used0
            refund1 = amount1 - used1
            if refund0 > 0:
                await self.tokens.transfer(state.token0, caller, refund0)
            if refund1 > 0:
                await self.tokens.transfer(state.token1, caller, refund1)

            return OpenResult(
                position_id=position_id,
                liquidity=liquidity,
                token0=state.token0,
                token1=state.token1,
                amount0=used0,
                amount1=used1,
                refund0=refund0,
                refund1=refund1,
                staked=gauge is not None,
                stage=stage,
            )

    # -- close ----------------------------------------------------------------

    async def close_position(self, caller: str, request: CloseRequest) -> CloseResult:
        caller = to_checksum_address(caller)
        position_id = int(request.position_id)
        async with self._atomic("close"):
            await self._check_deadline(request.deadline)

            info = await self.positions.positions(position_id)
            owner = await self.positions.owner_of(position_id)
            pool = await self._pool_for_position(info.token0, info.token1, info.tick_spacing)
            gauge = await self.gauge_resolver.gauge_for_pool(pool)

            reward_token: str | None = None
            reward_amount = 0
            was_staked = bool(gauge) and same_address(owner, gauge)
            if was_staked:
                beneficial_owner = self.ledger.owner_of(position_id)
                if not same_address(beneficial_owner, caller):
                    raise NotBeneficialOwner(position_id, caller, beneficial_owner)
                reward_token = await self.gauges.reward_token(gauge)
                reward_before = await self.tokens.balance_of(reward_token, self.account)
                await self.gauges.get_reward(gauge, position_id)
                await self.gauges.withdraw(gauge, position_id)
                reward_amount = (
                    await self.tokens.balance_of(reward_token, self.account)
                ) - reward_before
                self.ledger.remove(position_id)
                self._stage(
                    "close", CloseStage.UNSTAKED, position_id=position_id, reward=reward_amount
                )
            else:
                if not same_address(owner, caller):
                    raise Unauthorized(
                        f"{caller} does not own position {position_id} (owner={owner})"
                    )
                await self.positions.transfer_position(caller, self.account, position_id)

            fees0, fees1 = await self.positions.collect(position_id, self.account)
            self._stage("close", CloseStage.COLLECTED, fees0=fees0, fees1=fees1)

            state = await self.routes.pool_state(pool)
            bps = self.swaps.effective_slippage_bps(request.max_slippage_bps)
            removed0 = removed1 = 0
            if info.liquidity > 0:
                expected0, expected1 = amounts_for_liquidity(
                    state.sqrt_price_x96,
                    sqrt_price_at_tick(info.tick_lower),
                    sqrt_price_at_tick(info.tick_upper),
                    info.liquidity,
                )
                await self.positions.decrease_liquidity(
                    position_id,
                    info.liquidity,
                    slippage_min(expected0, bps),
                    slippage_min(expected1, bps),
                    request.deadline,
                )
                removed0, removed1 = await self.positions.collect(position_id, self.account)
            self._stage(
                "close", CloseStage.LIQUIDITY_REMOVED, amount0=removed0, amount1=removed1
            )

            await self.positions.burn(position_id)
            self._stage("close", CloseStage.BURNED, position_id=position_id)

            total0 = fees0 + removed0
            total1 = fees1 + removed1
            route0, route1 = await self._close_routes(request, state)
            out0 = await self._swap_leg(
                route0, state.token0, self.deposit_asset, total0, bps, request.deadline
            )
            out1 = await self._swap_leg(
                route1, state.token1, self.deposit_asset, total1, bps, request.deadline
            )
            amount_out = out0 + out1
            self._stage("close", CloseStage.SWAPPED_BACK, amount_out=amount_out)

            if amount_out < int(request.min_amount_out):
                raise InsufficientOutput(amount_out, request.min_amount_out, what="close")

            if amount_out > 0:
                await self.tokens.transfer(self.deposit_asset, caller, amount_out)
            if reward_token is not None and reward_amount > 0:
                await self.tokens.transfer(reward_token, caller, reward_amount)
            self._stage("close", CloseStage.SETTLED, caller=caller, amount_out=amount_out)

            return CloseResult(
                position_id=position_id,
                amount_out=amount_out,
                reward_token=reward_token,
                reward_amount=reward_amount,
                fees0=fees0,
                fees1=fees1,
                stage=CloseStage.SETTLED,
                was_staked=was_staked,
                leg_amounts=(total0, total1),
            )
