from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from loguru import logger

from n0ir_zap.core.errors import PriceUnavailable
from n0ir_zap.zap.interfaces import PriceOracle
from n0ir_zap.zap.types import same_address

RATE_SCALE = 10**18

Attempt = tuple[bool, Any]


async def attempt(
    fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
) -> Attempt:
    """Await ``fn(*args, **kwargs)`` and return ``(True, value)`` or ``(False, exc)``.

    Failures are logged at WARNING and handed back to the caller, which picks the
    next fallback in its ordered policy.
    """
    try:
        return True, await fn(*args, **kwargs)
    except Exception as exc:
        name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", repr(fn))
        logger.warning(f"{name} failed: {exc!r}")
        return False, exc


class UsdPriceResolver:
    """Values assets in deposit-asset raw units via the spot-price oracle."""

    def __init__(
        self,
        oracle: PriceOracle,
        deposit_asset: str,
        connectors: Sequence[str],
        threshold_filter: int,
    ):
        self.oracle = oracle
        self.deposit_asset = deposit_asset
        self.connectors = tuple(connectors)
        self.threshold_filter = int(threshold_filter)
        self.logger = logger.bind(component="UsdPriceResolver")

    def is_deposit_asset(self, asset: str) -> bool:
        return same_address(asset, self.deposit_asset)

    async def rate(self, asset: str) -> int:
        """Deposit-asset raw units per 1e18 raw units of ``asset``."""
        if self.is_deposit_asset(asset):
            return RATE_SCALE

        for connector in self.connectors:
            ok, result = await attempt(
                self.oracle.get_rate,
                asset,
                self.deposit_asset,
                connector,
                self.threshold_filter,
            )
            if not ok:
                continue
            rate, weight = result
            if int(rate) > 0 and int(weight) > 0:
                self.logger.debug(
                    f"rate {asset} via {connector}: rate={rate} weight={weight}"
                )
                return int(rate)

        raise PriceUnavailable(asset, len(self.connectors))

    async def to_native(self, asset: str, value: int) -> int:
        if self.is_deposit_asset(asset):
            return int(value)
        return int(value) * RATE_SCALE // await self.rate(asset)

    async def to_deposit(self, asset: str, amount: int) -> int:
        if self.is_deposit_asset(asset):
            return int(amount)
        return int(amount) * await self.rate(asset) // RATE_SCALE
