from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_utils import to_checksum_address

from n0ir_zap.adapters.fork_adapter.adapter import ForkAdapter, ForkRpcError
from n0ir_zap.core.constants.chains import CHAIN_ID_ANVIL, CHAIN_ID_BASE
from n0ir_zap.core.errors import WalletNotConfigured
from n0ir_zap.zap.interfaces import ExecutionEnvironment, TokenLedger

MODULE = "n0ir_zap.adapters.fork_adapter.adapter"
WALLET = "0x" + "11" * 20
TOKEN = "0x" + "aa" * 20
OWNER = "0x" + "22" * 20


class _Web3Ctx:
    def __init__(self, responses: dict | None = None, block: dict | None = None):
        self.responses = responses or {}
        self.block = block or {"timestamp": 0}
        self.requests: list[tuple[str, list]] = []

    async def __aenter__(self):
        w3 = MagicMock()

        async def make_request(method, params):
            self.requests.append((method, params))
            return self.responses.get(method, {"result": None})

        w3.provider.make_request = make_request
        w3.eth.get_block = AsyncMock(return_value=self.block)
        return w3

    async def __aexit__(self, *a):
        pass


@pytest.fixture
def adapter() -> ForkAdapter:
    return ForkAdapter(
        {"chain_id": CHAIN_ID_ANVIL},
        wallet_address=WALLET,
        sign_callback=AsyncMock(return_value=b"signed"),
    )


def test_satisfies_protocols(adapter):
    assert isinstance(adapter, TokenLedger)
    assert isinstance(adapter, ExecutionEnvironment)


def test_chain_defaults_to_base():
    adapter = ForkAdapter(wallet_address=WALLET.lower())
    assert adapter.chain_id == CHAIN_ID_BASE
    assert adapter.account == to_checksum_address(WALLET)
    assert adapter.account.lower() == WALLET


@pytest.mark.asyncio
async def test_snapshot_and_revert(adapter):
    ctx = _Web3Ctx({"evm_snapshot": {"result": "0x1"}, "evm_revert": {"result": True}})
    with patch(f"{MODULE}.web3_from_chain_id", return_value=ctx):
        snapshot_id = await adapter.snapshot()
        await adapter.revert(snapshot_id)
    assert ctx.requests == [("evm_snapshot", []), ("evm_revert", ["0x1"])]


@pytest.mark.asyncio
async def test_rejected_revert_raises(adapter):
    ctx = _Web3Ctx({"evm_revert": {"result": False}})
    with patch(f"{MODULE}.web3_from_chain_id", return_value=ctx):
        with pytest.raises(ForkRpcError):
            await adapter.revert("0x9")


@pytest.mark.asyncio
async def test_rpc_error_raises(adapter):
    ctx = _Web3Ctx({"evm_snapshot": {"error": {"message": "unsupported"}}})
    with patch(f"{MODULE}.web3_from_chain_id", return_value=ctx):
        with pytest.raises(ForkRpcError, match="unsupported"):
            await adapter.snapshot()


@pytest.mark.asyncio
async def test_timestamp_reads_latest_block(adapter):
    ctx = _Web3Ctx(block={"timestamp": 1_700_000_123})
    with patch(f"{MODULE}.web3_from_chain_id", return_value=ctx):
        assert await adapter.timestamp() == 1_700_000_123


@pytest.mark.asyncio
async def test_transfer_from_builds_and_sends(adapter):
    with (
        patch(
            f"{MODULE}.build_transfer_from_transaction",
            new=AsyncMock(return_value={"to": TOKEN}),
        ) as build,
        patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xabc")) as send,
    ):
        await adapter.transfer_from(TOKEN, OWNER, WALLET, 5)
    assert build.await_args.kwargs["owner_address"] == OWNER
    assert build.await_args.kwargs["spender_address"].lower() == WALLET
    send.assert_awaited_once()


@pytest.mark.asyncio
async def test_transfer_requires_wallet():
    with pytest.raises(WalletNotConfigured):
        await ForkAdapter({"chain_id": CHAIN_ID_ANVIL}).transfer(TOKEN, OWNER, 1)


@pytest.mark.asyncio
async def test_transfer_from_self_to_self_is_noop(adapter):
    with patch(f"{MODULE}.send_transaction", new=AsyncMock()) as send:
        await adapter.transfer_from(TOKEN, WALLET, WALLET, 5)
    send.assert_not_awaited()
