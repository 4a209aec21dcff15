import asyncio
from contextlib import asynccontextmanager

from web3 import AsyncHTTPProvider, AsyncWeb3

from n0ir_zap.core.config import get_rpc_urls

_RETRYABLE_STATUS_CODES = {502, 503, 504}
_MAX_RETRIES = 3
_RETRY_DELAY_S = 0.25


class _RetryingProvider(AsyncHTTPProvider):
    async def make_request(self, method, params):  # type: ignore[override]
        # Anvil forks answer 502/503 while replaying upstream state.
        for attempt in range(_MAX_RETRIES):
            try:
                return await super().make_request(method, params)
            except Exception as exc:
                status = getattr(exc, "status", None)
                if status not in _RETRYABLE_STATUS_CODES or attempt == _MAX_RETRIES - 1:
                    raise
                await asyncio.sleep(_RETRY_DELAY_S * (2**attempt))


def rpc_url_for_chain_id(chain_id: int) -> str:
    """First configured RPC for ``chain_id`` (``rpc_urls`` keys may be str or int)."""
    mapping = get_rpc_urls()
    rpcs = mapping.get(str(chain_id), mapping.get(chain_id))
    if isinstance(rpcs, str):
        rpcs = [rpcs]
    if not rpcs:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    return rpcs[0]


def get_transaction_chain_id(transaction: dict) -> int:
    if "chainId" not in transaction:
        raise ValueError("Transaction does not contain chainId")
    return int(transaction["chainId"])


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    provider = _RetryingProvider(
        rpc_url_for_chain_id(chain_id),
        request_kwargs={"headers": AsyncHTTPProvider.get_request_headers()},
    )
    web3 = AsyncWeb3(provider)
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
