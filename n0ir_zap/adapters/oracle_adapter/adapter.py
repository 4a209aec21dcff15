from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from n0ir_zap.core.adapters.BaseAdapter import BaseAdapter
from n0ir_zap.core.constants.oracle_abi import SPOT_PRICE_ORACLE_ABI
from n0ir_zap.core.utils.web3 import web3_from_chain_id


class SpotPriceOracleAdapter(BaseAdapter):
    """Read-only ``getRate`` against an on-chain spot-price aggregator."""

    adapter_type = "ORACLE"

    def __init__(self, config: dict[str, Any] | None = None, *, oracle_address: str):
        super().__init__("oracle_adapter", config)
        self.oracle_address = to_checksum_address(oracle_address)

    async def get_rate(
        self, src: str, dst: str, connector: str, threshold_filter: int
    ) -> tuple[int, int]:
        async with web3_from_chain_id(self.chain_id) as web3:
            c = web3.eth.contract(address=self.oracle_address, abi=SPOT_PRICE_ORACLE_ABI)
            rate, weight = await c.functions.getRate(
                to_checksum_address(src),
                to_checksum_address(dst),
                to_checksum_address(connector),
                int(threshold_filter),
            ).call()
        self.logger.debug(f"getRate {src}->{dst} via {connector}: {rate} (w={weight})")
        return int(rate), int(weight)
