import math
from collections.abc import Awaitable, Callable
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3

from n0ir_zap.core.constants.base import (
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_GAS_PRICE_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from n0ir_zap.core.constants.chains import PRE_EIP_1559_CHAIN_IDS
from n0ir_zap.core.utils.web3 import get_transaction_chain_id, web3_from_chain_id

SignCallback = Callable[[dict], Awaitable[bytes]]


class TransactionRevertedError(RuntimeError):
    def __init__(
        self,
        txn_hash: str,
        receipt: dict[str, Any] | None = None,
        message: str | None = None,
    ):
        self.txn_hash = txn_hash
        self.receipt = receipt or {}
        super().__init__(message or f"Transaction reverted: {txn_hash}")

    @classmethod
    def from_receipt(
        cls, txn_hash: str, receipt: dict[str, Any], transaction: dict[str, Any]
    ) -> "TransactionRevertedError":
        gas_used = int(receipt.get("gasUsed") or 0)
        gas_limit = int(transaction.get("gas") or 0)
        message = f"Transaction reverted (status=0): {txn_hash}"
        if gas_used and gas_limit and gas_used >= gas_limit:
            message += f" out of gas ({gas_used}/{gas_limit})"
        return cls(txn_hash, receipt, message=message)


def _normalize_hash(txn_hash: Any) -> str:
    if isinstance(txn_hash, (bytes, bytearray)):
        txn_hash = txn_hash.hex()
    txn_hash = str(txn_hash)
    return txn_hash if txn_hash.startswith("0x") else f"0x{txn_hash}"


def _sender(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


async def _fee_fields(web3: AsyncWeb3, chain_id: int) -> dict[str, int]:
    if chain_id in PRE_EIP_1559_CHAIN_IDS:
        gas_price = await web3.eth.gas_price
        return {"gasPrice": int(gas_price * SUGGESTED_GAS_PRICE_MULTIPLIER)}

    latest = await web3.eth.get_block("latest")
    history = await web3.eth.fee_history(10, "latest", [80])
    rewards = [r[0] for r in history.reward] if history.reward else []
    priority_fee = sum(rewards) // len(rewards) if rewards else 0
    tip = int(priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER)
    return {
        "maxFeePerGas": int(latest.baseFeePerGas * MAX_BASE_FEE_GROWTH_MULTIPLIER) + tip,
        "maxPriorityFeePerGas": tip,
    }


async def prepare_transaction(transaction: dict) -> dict:
    """Fill in gas limit, nonce and fee fields from the chain's RPC.

    A failed gas estimate means the call would revert; that is raised as
    ``TransactionRevertedError`` before anything is signed.
    """
    transaction = dict(transaction)
    transaction.pop("gas", None)
    chain_id = get_transaction_chain_id(transaction)
    sender = _sender(transaction)

    async with web3_from_chain_id(chain_id) as web3:
        try:
            estimate = await web3.eth.estimate_gas(transaction, block_identifier="latest")
        except Exception as exc:
            raise TransactionRevertedError(
                "",
                message=f"Gas estimation failed for {transaction.get('to')}: {exc}",
            ) from exc
        transaction["gas"] = int(math.ceil(estimate * GAS_BUFFER_MULTIPLIER))
        transaction["nonce"] = await web3.eth.get_transaction_count(
            sender, block_identifier="pending"
        )
        transaction.update(await _fee_fields(web3, chain_id))
    return transaction


async def wait_for_transaction_receipt(
    chain_id: int,
    txn_hash: str,
    poll_interval: float = 0.1,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
) -> dict:
    async with web3_from_chain_id(chain_id) as web3:
        receipt = await web3.eth.wait_for_transaction_receipt(
            _normalize_hash(txn_hash), poll_latency=poll_interval, timeout=timeout
        )
    return dict(receipt)


async def send_transaction(
    transaction: dict, sign_callback: SignCallback, wait_for_receipt=True
) -> str:
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")

    chain_id = get_transaction_chain_id(transaction)
    transaction = await prepare_transaction(transaction)
    signed = await sign_callback(transaction)
    async with web3_from_chain_id(chain_id) as web3:
        txn_hash = _normalize_hash(await web3.eth.send_raw_transaction(signed))
    logger.debug(f"Transaction broadcasted: {txn_hash} to={transaction.get('to')}")

    if wait_for_receipt:
        receipt = await wait_for_transaction_receipt(chain_id, txn_hash)
        if int(receipt.get("status", 1)) == 0:
            raise TransactionRevertedError.from_receipt(txn_hash, receipt, transaction)
    return txn_hash


def make_sign_callback(private_key: str) -> SignCallback:
    account = Account.from_key(private_key)

    async def sign_callback(tx: dict) -> bytes:
        return account.sign_transaction(tx).raw_transaction

    return sign_callback


async def encode_call(
    *,
    target: str,
    abi: list[dict[str, Any]],
    fn_name: str,
    args: list[Any],
    from_address: str,
    chain_id: int,
    value: int = 0,
) -> dict[str, Any]:
    async with web3_from_chain_id(chain_id) as web3:
        contract = web3.eth.contract(address=web3.to_checksum_address(target), abi=abi)
        try:
            data = contract.encode_abi(fn_name, args)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc

    return {
        "chainId": int(chain_id),
        "from": AsyncWeb3.to_checksum_address(from_address),
        "to": AsyncWeb3.to_checksum_address(target),
        "data": data,
        "value": int(value),
    }
