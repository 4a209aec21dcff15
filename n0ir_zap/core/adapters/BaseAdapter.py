from __future__ import annotations

import functools
from abc import ABC
from collections.abc import Callable
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from n0ir_zap.core.constants.chains import CHAIN_ID_BASE
from n0ir_zap.core.errors import WalletNotConfigured
from n0ir_zap.core.utils.transaction import SignCallback


def require_wallet(fn: Callable) -> Callable:
    """Raise ``WalletNotConfigured`` before a write if the adapter cannot sign."""

    @functools.wraps(fn)
    async def wrapper(self: BaseAdapter, *args: Any, **kwargs: Any) -> Any:
        if not self.wallet_address or self.sign_callback is None:
            raise WalletNotConfigured(self.name, fn.__name__)
        return await fn(self, *args, **kwargs)

    return wrapper


class BaseAdapter(ABC):
    """Common wiring for chain adapters.

    ``config["chain_id"]`` picks the RPC (defaults to Base). Read-only adapters
    leave ``wallet_address`` unset; methods decorated with ``require_wallet``
    then refuse to run.
    """

    adapter_type: str | None = None

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        wallet_address: str | None = None,
        sign_callback: SignCallback | None = None,
    ):
        self.name = name
        self.config = config or {}
        self.chain_id = int(self.config.get("chain_id") or CHAIN_ID_BASE)
        self.wallet_address = (
            to_checksum_address(wallet_address) if wallet_address else None
        )
        self.sign_callback = sign_callback
        self.logger = logger.bind(adapter=self.__class__.__name__, chain_id=self.chain_id)

    async def close(self) -> None:
        pass
