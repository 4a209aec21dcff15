from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from n0ir_zap.core.adapters.BaseAdapter import BaseAdapter, require_wallet
from n0ir_zap.core.utils.tokens import (
    build_transfer_from_transaction,
    build_transfer_transaction,
    get_token_balance,
)
from n0ir_zap.core.utils.transaction import SignCallback, send_transaction
from n0ir_zap.core.utils.web3 import web3_from_chain_id


class ForkRpcError(RuntimeError):
    pass


class ForkAdapter(BaseAdapter):
    """ERC20 ledger plus snapshot/revert for a local dev-chain fork (anvil, hardhat).

    Every write originates from ``wallet_address``, the zap account.
    """

    adapter_type = "FORK"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        wallet_address: str | None = None,
        sign_callback: SignCallback | None = None,
    ) -> None:
        super().__init__(
            "fork_adapter",
            config,
            wallet_address=wallet_address,
            sign_callback=sign_callback,
        )

    @property
    def account(self) -> str | None:
        return self.wallet_address

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        async with web3_from_chain_id(self.chain_id) as web3:
            resp = await web3.provider.make_request(method, params)
        if isinstance(resp, dict) and resp.get("error"):
            raise ForkRpcError(f"{method} failed: {resp['error']}")
        return resp.get("result") if isinstance(resp, dict) else resp

    # -----------------------------
    # Token ledger
    # -----------------------------

    async def balance_of(self, token: str, account: str) -> int:
        return await get_token_balance(token, self.chain_id, account)

    @require_wallet
    async def transfer(self, token: str, to: str, amount: int) -> None:
        tx = await build_transfer_transaction(
            from_address=self.wallet_address,
            to_address=to,
            token_address=token,
            chain_id=self.chain_id,
            amount=int(amount),
        )
        await send_transaction(tx, self.sign_callback)

    @require_wallet
    async def transfer_from(self, token: str, owner: str, to: str, amount: int) -> None:
        # The wallet zapping its own funds: nothing to pull.
        if (
            to_checksum_address(owner) == self.wallet_address
            and to_checksum_address(to) == self.wallet_address
        ):
            return
        tx = await build_transfer_from_transaction(
            spender_address=self.wallet_address,
            owner_address=owner,
            to_address=to,
            token_address=token,
            chain_id=self.chain_id,
            amount=int(amount),
        )
        await send_transaction(tx, self.sign_callback)

    # -----------------------------
    # Execution environment
    # -----------------------------

    async def snapshot(self) -> str:
        snapshot_id = await self._rpc("evm_snapshot", [])
        self.logger.debug(f"evm_snapshot -> {snapshot_id}")
        return snapshot_id

    async def revert(self, snapshot_id: Any) -> None:
        ok = await self._rpc("evm_revert", [snapshot_id])
        if ok is False:
            raise ForkRpcError(f"evm_revert({snapshot_id}) rejected")
        self.logger.warning(f"Reverted fork to snapshot {snapshot_id}")

    async def timestamp(self) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            block = await web3.eth.get_block("latest")
        return int(block["timestamp"])

    async def increase_time(self, seconds: int) -> None:
        await self._rpc("evm_increaseTime", [int(seconds)])
        await self._rpc("evm_mine", [])
