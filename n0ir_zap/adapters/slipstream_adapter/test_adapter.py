from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_utils import keccak

from n0ir_zap.adapters.slipstream_adapter.adapter import (
    COLLECT_TOPIC0,
    DECREASE_LIQUIDITY_TOPIC0,
    INCREASE_LIQUIDITY_TOPIC0,
    SlipstreamAdapter,
    parse_erc721_mint_token_id_from_receipt,
    parse_position_event_words,
)
from n0ir_zap.core.constants import ZERO_ADDRESS
from n0ir_zap.core.constants.aerodrome import AERODROME_SLIPSTREAM_NFPM
from n0ir_zap.core.constants.base import MAX_UINT128
from n0ir_zap.core.errors import WalletNotConfigured
from n0ir_zap.core.utils.transaction import TransactionRevertedError

MODULE = "n0ir_zap.adapters.slipstream_adapter.adapter"
WALLET = "0x" + "11" * 20
TOKEN0 = "0x" + "aa" * 20
TOKEN1 = "0x" + "bb" * 20
POOL = "0x" + "cc" * 20
GAUGE = "0x" + "dd" * 20


def _word(value: int) -> bytes:
    return int(value).to_bytes(32, "big")


def _address_topic(address: str) -> bytes:
    return bytes.fromhex(("00" * 12) + address[2:])


def _transfer_log(token_id: int, to: str, nft: str = AERODROME_SLIPSTREAM_NFPM) -> dict:
    return {
        "address": nft,
        "topics": [
            keccak(text="Transfer(address,address,uint256)"),
            bytes(32),
            _address_topic(to),
            _word(token_id),
        ],
        "data": b"",
    }


def _event_log(topic0: str, token_id: int, *words: int) -> dict:
    return {
        "address": AERODROME_SLIPSTREAM_NFPM,
        "topics": [bytes.fromhex(topic0), _word(token_id)],
        "data": b"".join(_word(w) for w in words),
    }


class _FakeCall:
    def __init__(self, rv):
        self._rv = rv

    async def call(self, *args, **kwargs):
        return self._rv


class _Functions:
    def __init__(self, **returns):
        self._returns = returns

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        rv = self._returns[name]
        return lambda *args: _FakeCall(rv(*args) if callable(rv) else rv)


class _FakeContract:
    def __init__(self, **returns):
        self.functions = _Functions(**returns)


class _Web3Ctx:
    def __init__(self, contract):
        self._contract = contract

    async def __aenter__(self):
        w3 = MagicMock()
        w3.eth.contract.return_value = self._contract
        return w3

    async def __aexit__(self, *a):
        pass


@pytest.fixture
def adapter() -> SlipstreamAdapter:
    return SlipstreamAdapter(
        {"chain_id": 8453},
        wallet_address=WALLET,
        sign_callback=AsyncMock(return_value=b"signed"),
    )


class TestReceiptParsing:
    def test_mint_token_id(self):
        receipt = {"logs": [_transfer_log(123, WALLET)]}
        token_id = parse_erc721_mint_token_id_from_receipt(
            receipt, nft_address=AERODROME_SLIPSTREAM_NFPM, to_address=WALLET
        )
        assert token_id == 123

    def test_mint_token_id_ignores_other_recipients(self):
        receipt = {"logs": [_transfer_log(5, "0x" + "99" * 20)]}
        with pytest.raises(RuntimeError, match="Unable to parse"):
            parse_erc721_mint_token_id_from_receipt(
                receipt, nft_address=AERODROME_SLIPSTREAM_NFPM, to_address=WALLET
            )

    def test_event_words_for_matching_position(self):
        receipt = {
            "logs": [
                _event_log(INCREASE_LIQUIDITY_TOPIC0, 1, 10, 20, 30),
                _event_log(INCREASE_LIQUIDITY_TOPIC0, 2, 40, 50, 60),
            ]
        }
        words = parse_position_event_words(
            receipt,
            emitter=AERODROME_SLIPSTREAM_NFPM,
            topic0=INCREASE_LIQUIDITY_TOPIC0,
            position_id=2,
        )
        assert words == [40, 50, 60]

    def test_event_words_missing(self):
        with pytest.raises(RuntimeError):
            parse_position_event_words(
                {"logs": []},
                emitter=AERODROME_SLIPSTREAM_NFPM,
                topic0=COLLECT_TOPIC0,
                position_id=1,
            )


class TestReads:
    @pytest.mark.asyncio
    async def test_get_pool_zero_is_zero_address(self, adapter):
        contract = _FakeContract(getPool="0x" + "00" * 20)
        with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(contract)):
            assert await adapter.get_pool(TOKEN0, TOKEN1, 100) == ZERO_ADDRESS

    @pytest.mark.asyncio
    async def test_pool_key(self, adapter):
        contract = _FakeContract(
            token0=TOKEN0, token1=TOKEN1, tickSpacing=100, fee=500
        )
        with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(contract)):
            key = await adapter.pool_key(POOL)
        assert key.tick_spacing == 100
        assert key.fee_pips == 500
        assert key.token0.lower() == TOKEN0

    @pytest.mark.asyncio
    async def test_slot0(self, adapter):
        contract = _FakeContract(slot0=(2**96, -5, 0, 1, 1, True))
        with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(contract)):
            assert await adapter.slot0(POOL) == (2**96, -5)

    @pytest.mark.asyncio
    async def test_gauge_for_pool(self, adapter):
        with patch(
            f"{MODULE}.web3_from_chain_id",
            return_value=_Web3Ctx(_FakeContract(gauges="0x" + "00" * 20)),
        ):
            assert await adapter.gauge_for_pool(POOL) is None
        with patch(
            f"{MODULE}.web3_from_chain_id",
            return_value=_Web3Ctx(_FakeContract(gauges=GAUGE)),
        ):
            assert (await adapter.gauge_for_pool(POOL)).lower() == GAUGE

    @pytest.mark.asyncio
    async def test_positions(self, adapter):
        raw = (0, ZERO_ADDRESS, TOKEN0, TOKEN1, 100, -200, 200, 777, 0, 0, 3, 4)
        with patch(
            f"{MODULE}.web3_from_chain_id",
            return_value=_Web3Ctx(_FakeContract(positions=raw)),
        ):
            info = await adapter.positions(9)
        assert (info.tick_lower, info.tick_upper, info.liquidity) == (-200, 200, 777)
        assert (info.tokens_owed0, info.tokens_owed1) == (3, 4)


class TestWrites:
    @pytest.mark.asyncio
    async def test_mint_parses_receipt(self, adapter):
        receipt = {
            "status": 1,
            "logs": [
                _transfer_log(42, WALLET),
                _event_log(INCREASE_LIQUIDITY_TOPIC0, 42, 1000, 11, 22),
            ],
        }
        with (
            patch(f"{MODULE}.ensure_allowance", new=AsyncMock()) as allowance,
            patch(f"{MODULE}.encode_call", new=AsyncMock(return_value={})) as encode,
            patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xabc")),
            patch(
                f"{MODULE}.wait_for_transaction_receipt",
                new=AsyncMock(return_value=receipt),
            ),
        ):
            result = await adapter.mint(
                token0=TOKEN0,
                token1=TOKEN1,
                tick_spacing=100,
                tick_lower=-200,
                tick_upper=200,
                amount0_desired=11,
                amount1_desired=22,
                amount0_min=10,
                amount1_min=20,
                recipient=WALLET,
                deadline=1,
            )
        assert result == (42, 1000, 11, 22)
        assert allowance.await_count == 2
        params = encode.await_args.kwargs["args"][0]
        assert params[2:5] == (100, -200, 200)
        assert params[-1] == 0

    @pytest.mark.asyncio
    async def test_mint_skips_approval_for_zero_side(self, adapter):
        receipt = {
            "status": 1,
            "logs": [
                _transfer_log(1, WALLET),
                _event_log(INCREASE_LIQUIDITY_TOPIC0, 1, 5, 0, 22),
            ],
        }
        with (
            patch(f"{MODULE}.ensure_allowance", new=AsyncMock()) as allowance,
            patch(f"{MODULE}.encode_call", new=AsyncMock(return_value={})),
            patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xabc")),
            patch(
                f"{MODULE}.wait_for_transaction_receipt",
                new=AsyncMock(return_value=receipt),
            ),
        ):
            await adapter.mint(
                token0=TOKEN0,
                token1=TOKEN1,
                tick_spacing=100,
                tick_lower=-200,
                tick_upper=200,
                amount0_desired=0,
                amount1_desired=22,
                amount0_min=0,
                amount1_min=0,
                recipient=WALLET,
                deadline=1,
            )
        assert allowance.await_count == 1
        assert allowance.await_args.kwargs["token_address"].lower() == TOKEN1

    @pytest.mark.asyncio
    async def test_collect_and_decrease(self, adapter):
        receipt = {
            "status": 1,
            "logs": [
                _event_log(DECREASE_LIQUIDITY_TOPIC0, 7, 500, 3, 4),
                _event_log(COLLECT_TOPIC0, 7, int(WALLET, 16), 8, 9),
            ],
        }
        with (
            patch(f"{MODULE}.encode_call", new=AsyncMock(return_value={})) as encode,
            patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xabc")),
            patch(
                f"{MODULE}.wait_for_transaction_receipt",
                new=AsyncMock(return_value=receipt),
            ),
        ):
            assert await adapter.decrease_liquidity(7, 500, 0, 0, 1) == (3, 4)
            assert await adapter.collect(7, WALLET) == (8, 9)
        collect_params = encode.await_args.kwargs["args"][0]
        assert collect_params[2:] == (MAX_UINT128, MAX_UINT128)

    @pytest.mark.asyncio
    async def test_reverted_receipt_raises(self, adapter):
        with (
            patch(f"{MODULE}.encode_call", new=AsyncMock(return_value={})),
            patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xdead")),
            patch(
                f"{MODULE}.wait_for_transaction_receipt",
                new=AsyncMock(return_value={"status": 0, "logs": []}),
            ),
        ):
            with pytest.raises(TransactionRevertedError):
                await adapter.burn(3)

    @pytest.mark.asyncio
    async def test_gauge_deposit_approves_nft_first(self, adapter):
        with (
            patch(f"{MODULE}.encode_call", new=AsyncMock(return_value={})) as encode,
            patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xabc")),
            patch(
                f"{MODULE}.wait_for_transaction_receipt",
                new=AsyncMock(return_value={"status": 1, "logs": []}),
            ),
        ):
            await adapter.deposit(GAUGE, 5)
        fn_names = [c.kwargs["fn_name"] for c in encode.await_args_list]
        assert fn_names == ["approve", "deposit"]

    @pytest.mark.asyncio
    async def test_exact_input_approves_first_path_token(self, adapter):
        path = bytes.fromhex(TOKEN0[2:]) + (100).to_bytes(3, "big") + bytes.fromhex(
            TOKEN1[2:]
        )
        with (
            patch(f"{MODULE}.ensure_allowance", new=AsyncMock()) as allowance,
            patch(f"{MODULE}.encode_call", new=AsyncMock(return_value={})),
            patch(f"{MODULE}.send_transaction", new=AsyncMock(return_value="0xabc")),
            patch(
                f"{MODULE}.wait_for_transaction_receipt",
                new=AsyncMock(return_value={"status": 1, "logs": []}),
            ),
        ):
            await adapter.exact_input(
                path=path,
                recipient=WALLET,
                deadline=1,
                amount_in=10,
                amount_out_minimum=9,
            )
        assert allowance.await_args.kwargs["token_address"].lower() == TOKEN0

    @pytest.mark.asyncio
    async def test_writes_require_wallet(self):
        adapter = SlipstreamAdapter({"chain_id": 8453})
        with pytest.raises(WalletNotConfigured):
            await adapter.burn(1)

    @pytest.mark.asyncio
    async def test_writes_require_signer(self):
        adapter = SlipstreamAdapter({"chain_id": 8453}, wallet_address=WALLET)
        with pytest.raises(WalletNotConfigured) as exc_info:
            await adapter.burn(1)
        assert exc_info.value.adapter == "slipstream_adapter"
        assert exc_info.value.method == "burn"
