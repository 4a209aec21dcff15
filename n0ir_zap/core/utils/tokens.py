from web3 import AsyncWeb3

from n0ir_zap.core.constants.erc20_abi import ERC20_ABI
from n0ir_zap.core.utils.transaction import SignCallback, encode_call, send_transaction
from n0ir_zap.core.utils.web3 import web3_from_chain_id


def _erc20(web3: AsyncWeb3, token_address: str):
    return web3.eth.contract(address=web3.to_checksum_address(token_address), abi=ERC20_ABI)


async def get_token_balance(
    token_address: str,
    chain_id: int,
    wallet_address: str,
    *,
    block_identifier: str | int = "pending",
) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        balance = await _erc20(web3, token_address).functions.balanceOf(
            web3.to_checksum_address(wallet_address)
        ).call(block_identifier=block_identifier)
    return int(balance)


async def get_token_allowance(
    token_address: str, chain_id: int, owner_address: str, spender_address: str
) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        allowance = await _erc20(web3, token_address).functions.allowance(
            web3.to_checksum_address(owner_address),
            web3.to_checksum_address(spender_address),
        ).call(block_identifier="pending")
    return int(allowance)


async def build_approve_transaction(
    from_address: str,
    chain_id: int,
    token_address: str,
    spender_address: str,
    amount: int,
) -> dict:
    return await encode_call(
        target=token_address,
        abi=ERC20_ABI,
        fn_name="approve",
        args=[AsyncWeb3.to_checksum_address(spender_address), int(amount)],
        from_address=from_address,
        chain_id=chain_id,
    )


async def build_transfer_transaction(
    from_address: str,
    to_address: str,
    token_address: str,
    chain_id: int,
    amount: int,
) -> dict:
    return await encode_call(
        target=token_address,
        abi=ERC20_ABI,
        fn_name="transfer",
        args=[AsyncWeb3.to_checksum_address(to_address), int(amount)],
        from_address=from_address,
        chain_id=chain_id,
    )


async def build_transfer_from_transaction(
    spender_address: str,
    owner_address: str,
    to_address: str,
    token_address: str,
    chain_id: int,
    amount: int,
) -> dict:
    """``transferFrom`` sent by ``spender_address``, which must hold the allowance."""
    return await encode_call(
        target=token_address,
        abi=ERC20_ABI,
        fn_name="transferFrom",
        args=[
            AsyncWeb3.to_checksum_address(owner_address),
            AsyncWeb3.to_checksum_address(to_address),
            int(amount),
        ],
        from_address=spender_address,
        chain_id=chain_id,
    )


async def ensure_allowance(
    *,
    token_address: str,
    owner: str,
    spender: str,
    amount: int,
    chain_id: int,
    signing_callback: SignCallback,
    approval_amount: int | None = None,
) -> str | None:
    """Approve ``spender`` when the current allowance is below ``amount``.

    Returns the approval transaction hash, or ``None`` if no approval was needed.
    """
    allowance = await get_token_allowance(token_address, chain_id, owner, spender)
    if allowance >= amount:
        return None

    approve_tx = await build_approve_transaction(
        from_address=owner,
        chain_id=chain_id,
        token_address=token_address,
        spender_address=spender,
        amount=approval_amount if approval_amount is not None else amount,
    )
    return await send_transaction(approve_tx, signing_callback)
