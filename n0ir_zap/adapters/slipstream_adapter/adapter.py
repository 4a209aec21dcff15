from __future__ import annotations

from typing import Any

from eth_utils import keccak, to_checksum_address

from n0ir_zap.core.adapters.BaseAdapter import BaseAdapter, require_wallet
from n0ir_zap.core.constants import ZERO_ADDRESS
from n0ir_zap.core.constants.aerodrome import (
    AERODROME_SLIPSTREAM_FACTORY,
    AERODROME_SLIPSTREAM_NFPM,
    AERODROME_SLIPSTREAM_QUOTER,
    AERODROME_SLIPSTREAM_SWAP_ROUTER,
    AERODROME_VOTER,
)
from n0ir_zap.core.constants.aerodrome_abi import (
    SLIPSTREAM_CLPOOL_ABI,
    SLIPSTREAM_FACTORY_ABI,
    SLIPSTREAM_GAUGE_ABI,
    SLIPSTREAM_NFPM_ABI,
    SLIPSTREAM_QUOTER_ABI,
    SLIPSTREAM_SWAP_ROUTER_ABI,
    VOTER_ABI,
)
from n0ir_zap.core.constants.base import MAX_UINT128, MAX_UINT256
from n0ir_zap.core.utils.tokens import ensure_allowance
from n0ir_zap.core.utils.transaction import (
    SignCallback,
    TransactionRevertedError,
    encode_call,
    send_transaction,
    wait_for_transaction_receipt,
)
from n0ir_zap.core.utils.web3 import web3_from_chain_id
from n0ir_zap.zap.types import PoolKey, PositionInfo

TRANSFER_TOPIC0 = keccak(text="Transfer(address,address,uint256)").hex()
INCREASE_LIQUIDITY_TOPIC0 = keccak(
    text="IncreaseLiquidity(uint256,uint128,uint256,uint256)"
).hex()
DECREASE_LIQUIDITY_TOPIC0 = keccak(
    text="DecreaseLiquidity(uint256,uint128,uint256,uint256)"
).hex()
COLLECT_TOPIC0 = keccak(text="Collect(uint256,address,uint256,uint256)").hex()


def _hex(value: Any) -> str:
    raw = value.hex() if hasattr(value, "hex") else str(value)
    return str(raw).lower().removeprefix("0x")


def _nonzero_address(value: str | None) -> str | None:
    if not value or int(value, 16) == 0:
        return None
    return to_checksum_address(value)


def parse_erc721_mint_token_id_from_receipt(
    receipt: dict[str, Any],
    *,
    nft_address: str,
    to_address: str,
) -> int:
    nft_address = to_checksum_address(nft_address).lower()
    to_address = to_checksum_address(to_address).lower()
    transfer_topic0 = _hex(TRANSFER_TOPIC0)

    for lg in receipt.get("logs") or []:
        if str(lg.get("address", "")).lower() != nft_address:
            continue
        topics = lg.get("topics") or []
        if len(topics) < 4 or _hex(topics[0]) != transfer_topic0:
            continue
        from_addr = "0x" + _hex(topics[1])[-40:]
        to_addr = "0x" + _hex(topics[2])[-40:]
        if int(from_addr, 16) != 0 or to_addr.lower() != to_address:
            continue
        return int(_hex(topics[3]), 16)
    raise RuntimeError("Unable to parse ERC721 tokenId from receipt logs")


def parse_position_event_words(
    receipt: dict[str, Any],
    *,
    emitter: str,
    topic0: str,
    position_id: int,
) -> list[int]:
    """Decode the non-indexed 32-byte words of an NFPM event for ``position_id``."""
    emitter = to_checksum_address(emitter).lower()
    topic0 = _hex(topic0)
    for lg in receipt.get("logs") or []:
        if str(lg.get("address", "")).lower() != emitter:
            continue
        topics = lg.get("topics") or []
        if len(topics) < 2 or _hex(topics[0]) != topic0:
            continue
        if int(_hex(topics[1]), 16) != int(position_id):
            continue
        data = _hex(lg.get("data", ""))
        return [int(data[i : i + 64], 16) for i in range(0, len(data), 64)]
    raise RuntimeError(f"Event {topic0[:10]} for position {position_id} not in receipt")


class SlipstreamAdapter(BaseAdapter):
    """Aerodrome Slipstream contracts driven from a single signing wallet.

    Covers the pool factory, pool reads, the position manager, swap router,
    quoter, voter and gauges.
    """

    adapter_type = "SLIPSTREAM"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        wallet_address: str | None = None,
        sign_callback: SignCallback | None = None,
    ) -> None:
        super().__init__(
            "slipstream_adapter",
            config,
            wallet_address=wallet_address,
            sign_callback=sign_callback,
        )
        contracts = self.config.get("contracts") or {}
        self.factory = to_checksum_address(
            contracts.get("factory", AERODROME_SLIPSTREAM_FACTORY)
        )
        self.nfpm = to_checksum_address(contracts.get("nfpm", AERODROME_SLIPSTREAM_NFPM))
        self.router = to_checksum_address(
            contracts.get("router", AERODROME_SLIPSTREAM_SWAP_ROUTER)
        )
        self.quoter = to_checksum_address(
            contracts.get("quoter", AERODROME_SLIPSTREAM_QUOTER)
        )
        self.voter = to_checksum_address(contracts.get("voter", AERODROME_VOTER))

    # -----------------------------
    # Tx helpers
    # -----------------------------

    async def _send(self, target: str, abi: list, fn_name: str, args: list) -> dict:
        tx = await encode_call(
            target=target,
            abi=abi,
            fn_name=fn_name,
            args=args,
            from_address=self.wallet_address,
            chain_id=self.chain_id,
        )
        tx_hash = await send_transaction(tx, self.sign_callback, wait_for_receipt=False)
        receipt = await wait_for_transaction_receipt(self.chain_id, tx_hash)
        if int(receipt.get("status", 1)) == 0:
            raise TransactionRevertedError(tx_hash, receipt)
        self.logger.debug(f"{fn_name} mined in {tx_hash}")
        return receipt

    async def _approve_token(self, token: str, spender: str, amount: int) -> None:
        await ensure_allowance(
            token_address=to_checksum_address(token),
            owner=self.wallet_address,
            spender=spender,
            amount=int(amount),
            chain_id=self.chain_id,
            signing_callback=self.sign_callback,
            approval_amount=MAX_UINT256,
        )

    # -----------------------------
    # Pools
    # -----------------------------

    async def get_pool(self, token_a: str, token_b: str, tick_spacing: int) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self.factory, abi=SLIPSTREAM_FACTORY_ABI)
            pool = await c.functions.getPool(
                to_checksum_address(token_a),
                to_checksum_address(token_b),
                int(tick_spacing),
            ).call()
        return _nonzero_address(pool) or ZERO_ADDRESS

    async def pool_key(self, pool: str) -> PoolKey:
        pool = to_checksum_address(pool)
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=pool, abi=SLIPSTREAM_CLPOOL_ABI)
            token0 = await c.functions.token0().call()
            token1 = await c.functions.token1().call()
            tick_spacing = await c.functions.tickSpacing().call()
            fee = await c.functions.fee().call()
        return PoolKey(
            pool=pool,
            token0=to_checksum_address(token0),
            token1=to_checksum_address(token1),
            tick_spacing=int(tick_spacing),
            fee_pips=int(fee),
        )

    async def slot0(self, pool: str) -> tuple[int, int]:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(
                address=to_checksum_address(pool), abi=SLIPSTREAM_CLPOOL_ABI
            )
            slot0 = await c.functions.slot0().call()
        return int(slot0[0]), int(slot0[1])

    async def gauge_for_pool(self, pool: str) -> str | None:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self.voter, abi=VOTER_ABI)
            gauge = await c.functions.gauges(to_checksum_address(pool)).call()
        return _nonzero_address(gauge)

    # -----------------------------
    # Positions
    # -----------------------------

    @require_wallet
    async def mint(
        self,
        *,
        token0: str,
        token1: str,
        tick_spacing: int,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
        amount0_min: int,
        amount1_min: int,
        recipient: str,
        deadline: int,
    ) -> tuple[int, int, int, int]:
        if amount0_desired > 0:
            await self._approve_token(token0, self.nfpm, amount0_desired)
        if amount1_desired > 0:
            await self._approve_token(token1, self.nfpm, amount1_desired)

        params = (
            to_checksum_address(token0),
            to_checksum_address(token1),
            int(tick_spacing),
            int(tick_lower),
            int(tick_upper),
            int(amount0_desired),
            int(amount1_desired),
            int(amount0_min),
            int(amount1_min),
            to_checksum_address(recipient),
            int(deadline),
            0,
        )
        receipt = await self._send(self.nfpm, SLIPSTREAM_NFPM_ABI, "mint", [params])
        position_id = parse_erc721_mint_token_id_from_receipt(
            receipt, nft_address=self.nfpm, to_address=recipient
        )
        liquidity, amount0, amount1 = parse_position_event_words(
            receipt,
            emitter=self.nfpm,
            topic0=INCREASE_LIQUIDITY_TOPIC0,
            position_id=position_id,
        )[:3]
        self.logger.info(
            f"Minted position {position_id}: L={liquidity} used=({amount0}, {amount1})"
        )
        return position_id, liquidity, amount0, amount1

    @require_wallet
    async def decrease_liquidity(
        self,
        position_id: int,
        liquidity: int,
        amount0_min: int,
        amount1_min: int,
        deadline: int,
    ) -> tuple[int, int]:
        params = (
            int(position_id),
            int(liquidity),
            int(amount0_min),
            int(amount1_min),
            int(deadline),
        )
        receipt = await self._send(
            self.nfpm, SLIPSTREAM_NFPM_ABI, "decreaseLiquidity", [params]
        )
        words = parse_position_event_words(
            receipt,
            emitter=self.nfpm,
            topic0=DECREASE_LIQUIDITY_TOPIC0,
            position_id=position_id,
        )
        return words[1], words[2]

    @require_wallet
    async def collect(self, position_id: int, recipient: str) -> tuple[int, int]:
        params = (
            int(position_id),
            to_checksum_address(recipient),
            MAX_UINT128,
            MAX_UINT128,
        )
        receipt = await self._send(self.nfpm, SLIPSTREAM_NFPM_ABI, "collect", [params])
        words = parse_position_event_words(
            receipt, emitter=self.nfpm, topic0=COLLECT_TOPIC0, position_id=position_id
        )
        # words[0] is the recipient
        return words[1], words[2]

    @require_wallet
    async def burn(self, position_id: int) -> None:
        await self._send(self.nfpm, SLIPSTREAM_NFPM_ABI, "burn", [int(position_id)])

    async def owner_of(self, position_id: int) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self.nfpm, abi=SLIPSTREAM_NFPM_ABI)
            owner = await c.functions.ownerOf(int(position_id)).call()
        return to_checksum_address(owner)

    async def positions(self, position_id: int) -> PositionInfo:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self.nfpm, abi=SLIPSTREAM_NFPM_ABI)
            raw = await c.functions.positions(int(position_id)).call()
        return PositionInfo(
            position_id=int(position_id),
            token0=to_checksum_address(raw[2]),
            token1=to_checksum_address(raw[3]),
            tick_spacing=int(raw[4]),
            tick_lower=int(raw[5]),
            tick_upper=int(raw[6]),
            liquidity=int(raw[7]),
            tokens_owed0=int(raw[10]),
            tokens_owed1=int(raw[11]),
        )

    @require_wallet
    async def transfer_position(self, owner: str, to: str, position_id: int) -> None:
        await self._send(
            self.nfpm,
            SLIPSTREAM_NFPM_ABI,
            "safeTransferFrom",
            [to_checksum_address(owner), to_checksum_address(to), int(position_id)],
        )

    # -----------------------------
    # Swaps
    # -----------------------------

    @require_wallet
    async def exact_input_single(
        self,
        *,
        token_in: str,
        token_out: str,
        tick_spacing: int,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
    ) -> None:
        await self._approve_token(token_in, self.router, amount_in)
        params = (
            to_checksum_address(token_in),
            to_checksum_address(token_out),
            int(tick_spacing),
            to_checksum_address(recipient),
            int(deadline),
            int(amount_in),
            int(amount_out_minimum),
            0,
        )
        await self._send(
            self.router, SLIPSTREAM_SWAP_ROUTER_ABI, "exactInputSingle", [params]
        )

    @require_wallet
    async def exact_input(
        self,
        *,
        path: bytes,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
    ) -> None:
        token_in = to_checksum_address("0x" + bytes(path[:20]).hex())
        await self._approve_token(token_in, self.router, amount_in)
        params = (
            bytes(path),
            to_checksum_address(recipient),
            int(deadline),
            int(amount_in),
            int(amount_out_minimum),
        )
        await self._send(self.router, SLIPSTREAM_SWAP_ROUTER_ABI, "exactInput", [params])

    async def quote_exact_input(self, path: bytes, amount_in: int) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self.quoter, abi=SLIPSTREAM_QUOTER_ABI)
            out = await c.functions.quoteExactInput(bytes(path), int(amount_in)).call()
        return int(out[0] if isinstance(out, (list, tuple)) else out)

    # -----------------------------
    # Gauges
    # -----------------------------

    @require_wallet
    async def deposit(self, gauge: str, position_id: int) -> None:
        gauge = to_checksum_address(gauge)
        await self._send(
            self.nfpm, SLIPSTREAM_NFPM_ABI, "approve", [gauge, int(position_id)]
        )
        await self._send(gauge, SLIPSTREAM_GAUGE_ABI, "deposit", [int(position_id)])

    @require_wallet
    async def withdraw(self, gauge: str, position_id: int) -> None:
        await self._send(
            to_checksum_address(gauge),
            SLIPSTREAM_GAUGE_ABI,
            "withdraw",
            [int(position_id)],
        )

    async def earned(self, gauge: str, account: str, position_id: int) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(
                address=to_checksum_address(gauge), abi=SLIPSTREAM_GAUGE_ABI
            )
            return int(
                await c.functions.earned(
                    to_checksum_address(account), int(position_id)
                ).call()
            )

    @require_wallet
    async def get_reward(self, gauge: str, position_id: int) -> None:
        await self._send(
            to_checksum_address(gauge),
            SLIPSTREAM_GAUGE_ABI,
            "getReward",
            [int(position_id)],
        )

    async def reward_token(self, gauge: str) -> str:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(
                address=to_checksum_address(gauge), abi=SLIPSTREAM_GAUGE_ABI
            )
            return to_checksum_address(await c.functions.rewardToken().call())
