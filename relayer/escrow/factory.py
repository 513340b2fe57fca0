"""
Escrow factory: deterministic escrow address prediction.

The factory deploys escrows at addresses derived from the ExecutionData, so
both addresses are known before either escrow exists. Prediction must encode
the struct exactly as deployment will; to_abi_tuple() owns that encoding.
"""

import logging
from typing import Tuple

from web3 import Web3

from ..core import ExecutionData, ValidationError, short_hex
from ..chains.evm import EVMClient
from .abi import FACTORY_ABI

log = logging.getLogger(__name__)


class EscrowFactory:
    """Read-only view of one chain's escrow factory."""

    def __init__(self, client: EVMClient, address: str):
        if not address:
            raise ValidationError("factory address is required")
        self.client = client
        self.address = Web3.to_checksum_address(address)

    def address_of_src(self, execution_data: ExecutionData) -> str:
        result = self.client.call_function(
            self.address, FACTORY_ABI, "addressOfEscrowSrc", execution_data.to_abi_tuple()
        )
        return Web3.to_checksum_address(result)

    def address_of_dst(self, execution_data: ExecutionData) -> str:
        result = self.client.call_function(
            self.address, FACTORY_ABI, "addressOfEscrowDst", execution_data.to_abi_tuple()
        )
        return Web3.to_checksum_address(result)

    def predict_addresses(self, execution_data: ExecutionData) -> Tuple[str, str]:
        """
        Compute both escrow addresses for a proposed swap.

        Returns:
            (src_escrow, dst_escrow)

        Raises:
            RPCError: the factory could not be reached (retryable)
        """
        src_escrow = self.address_of_src(execution_data)
        dst_escrow = self.address_of_dst(execution_data)
        log.info(f"[{self.client.chain_key}] Predicted escrows for {short_hex(execution_data.hashlock)}: "
                 f"src={src_escrow} dst={dst_escrow}")
        return src_escrow, dst_escrow
