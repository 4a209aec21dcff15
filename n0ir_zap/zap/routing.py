from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence

from aiocache import Cache
from loguru import logger

from n0ir_zap.core.constants import ZERO_ADDRESS
from n0ir_zap.core.constants.base import DEFAULT_POOL_CACHE_TTL_S
from n0ir_zap.zap.interfaces import PoolReader, PoolRegistry
from n0ir_zap.zap.types import (
    PoolKey,
    PoolLookup,
    PoolState,
    RouteStatus,
    SwapRoute,
    canonical_pair,
    same_address,
)

Leg = SwapRoute | None


def route_status(needed: int, found: int) -> RouteStatus:
    if found >= needed:
        return RouteStatus.SUCCESS
    if found == 0:
        return RouteStatus.NO_ROUTE
    return RouteStatus.PARTIAL_SUCCESS


class RouteFinder:
    """Pool discovery and swap-route construction over the pool registry.

    Registry answers (including misses) and pool immutables are memoized for
    ``cache_ttl_s``; live pool prices are never cached.
    """

    def __init__(
        self,
        registry: PoolRegistry,
        reader: PoolReader,
        *,
        deposit_asset: str,
        tick_spacings: Sequence[int],
        connectors: Sequence[str],
        cache_ttl_s: float = DEFAULT_POOL_CACHE_TTL_S,
    ):
        self.registry = registry
        self.reader = reader
        self.deposit_asset = deposit_asset
        self.tick_spacings = tuple(sorted(int(ts) for ts in tick_spacings))
        self.connectors = tuple(connectors)
        self.cache_ttl_s = cache_ttl_s
        self._cache = Cache(Cache.MEMORY, namespace=f"routes:{uuid.uuid4().hex}")
        self.logger = logger.bind(component="RouteFinder")

    # -- registry lookups -------------------------------------------------

    @staticmethod
    def _pool_cache_key(token_a: str, token_b: str, tick_spacing: int) -> str:
        a, b = canonical_pair(token_a, token_b)
        return f"pool:{a}:{b}:{int(tick_spacing)}"

    async def get_pool(self, token_a: str, token_b: str, tick_spacing: int) -> str:
        key = self._pool_cache_key(token_a, token_b, tick_spacing)
        cached = await self._cache.get(key)
        if cached is not None:
            self.logger.debug(f"cache hit {key} -> {cached}")
            return cached

        a, b = canonical_pair(token_a, token_b)
        pool = await self.registry.get_pool(a, b, int(tick_spacing))
        pool = pool or ZERO_ADDRESS
        await self._cache.set(key, pool, ttl=self.cache_ttl_s)
        self.logger.debug(f"cache miss {key} -> {pool}")
        return pool

    async def find_pool(self, token_a: str, token_b: str) -> PoolLookup:
        if same_address(token_a, token_b):
            return PoolLookup(pool=ZERO_ADDRESS, tick_spacing=0, exists=False)
        for tick_spacing in self.tick_spacings:
            pool = await self.get_pool(token_a, token_b, tick_spacing)
            if not same_address(pool, ZERO_ADDRESS):
                return PoolLookup(pool=pool, tick_spacing=tick_spacing, exists=True)
        return PoolLookup(pool=ZERO_ADDRESS, tick_spacing=0, exists=False)

    async def pool_key(self, pool: str) -> PoolKey:
        key = f"key:{pool.lower()}"
        cached = await self._cache.get(key)
        if cached is not None:
            return cached
        pool_key = await self.reader.pool_key(pool)
        await self._cache.set(key, pool_key, ttl=self.cache_ttl_s)
        return pool_key

    async def pool_state(self, pool: str) -> PoolState:
        pool_key = await self.pool_key(pool)
        sqrt_price_x96, tick = await self.reader.slot0(pool)
        return PoolState(key=pool_key, sqrt_price_x96=int(sqrt_price_x96), tick=int(tick))

    async def warm_up(self, pairs: Iterable[tuple[str, str]]) -> None:
        for token_a, token_b in pairs:
            for tick_spacing in self.tick_spacings:
                await self.get_pool(token_a, token_b, tick_spacing)

    async def clear_cache(self) -> None:
        await self._cache.clear(namespace=self._cache.namespace)

    # -- route construction -----------------------------------------------

    async def find_leg(self, token_in: str, token_out: str) -> Leg:
        """Direct pool first, then two hops through each connector in order."""
        if same_address(token_in, token_out):
            return SwapRoute.empty(token_in)

        direct = await self.find_pool(token_in, token_out)
        if direct.exists:
            return SwapRoute(
                tokens=(token_in, token_out),
                pools=(direct.pool,),
                tick_spacings=(direct.tick_spacing,),
            )

        for connector in self.connectors:
            if same_address(connector, token_in) or same_address(connector, token_out):
                continue
            first = await self.find_pool(token_in, connector)
            if not first.exists:
                continue
            second = await self.find_pool(connector, token_out)
            if not second.exists:
                continue
            return SwapRoute(
                tokens=(token_in, connector, token_out),
                pools=(first.pool, second.pool),
                tick_spacings=(first.tick_spacing, second.tick_spacing),
            )
        return None

    def _is_deposit(self, token: str) -> bool:
        return same_address(token, self.deposit_asset)

    async def _legs(
        self,
        asset0: str,
        asset1: str,
        *,
        inbound: bool,
        pool: str | None,
        tick_spacing: int | None,
    ) -> tuple[Leg, Leg, RouteStatus]:
        def through_pool(asset: str) -> SwapRoute:
            tokens = (self.deposit_asset, asset) if inbound else (asset, self.deposit_asset)
            return SwapRoute(tokens=tokens, pools=(pool,), tick_spacings=(tick_spacing,))

        async def resolve(asset: str, other: str) -> Leg:
            if self._is_deposit(asset):
                return SwapRoute.empty(asset)
            if pool is not None and self._is_deposit(other):
                return through_pool(asset)
            if inbound:
                return await self.find_leg(self.deposit_asset, asset)
            return await self.find_leg(asset, self.deposit_asset)

        route0 = await resolve(asset0, asset1)
        route1 = await resolve(asset1, asset0)

        needed = sum(1 for a in (asset0, asset1) if not self._is_deposit(a))
        found = sum(
            1
            for a, r in ((asset0, route0), (asset1, route1))
            if not self._is_deposit(a) and r is not None
        )
        status = route_status(needed, found)
        self.logger.debug(f"routes {asset0}/{asset1} inbound={inbound}: {status.value}")
        return route0, route1, status

    async def find_route_for_open(
        self,
        asset0: str,
        asset1: str,
        target_pool: str,
        target_tick_spacing: int,
    ) -> tuple[Leg, Leg, RouteStatus]:
        """Routes from the deposit asset into each position asset.

        When one asset is the deposit asset the other leg swaps through
        ``target_pool`` itself.
        """
        return await self._legs(
            asset0,
            asset1,
            inbound=True,
            pool=target_pool,
            tick_spacing=target_tick_spacing,
        )

    async def find_route_for_close(
        self,
        asset0: str,
        asset1: str,
        source_pool: str | None = None,
        source_tick_spacing: int | None = None,
    ) -> tuple[Leg, Leg, RouteStatus]:
        return await self._legs(
            asset0,
            asset1,
            inbound=False,
            pool=source_pool,
            tick_spacing=source_tick_spacing,
        )
