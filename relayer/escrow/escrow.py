"""
Per-swap escrow contract access.

Interacts with a deployed EscrowSrc / EscrowDst: reads the canonical
ExecutionData it was created with and withdraws with the secret.
"""

import logging
from typing import Optional
from dataclasses import dataclass

from web3 import Web3

from ..core import ExecutionData, EscrowSide, to_bytes32_hex, short_hex
from ..chains.evm import EVMClient
from .abi import ESCROW_ABI

log = logging.getLogger(__name__)


@dataclass
class WithdrawalResult:
    """Result from an escrow withdrawal."""
    success: bool
    side: EscrowSide
    escrow: str
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class Escrow:
    """One deployed escrow on one chain."""

    def __init__(self, client: EVMClient, address: str, side: EscrowSide):
        self.client = client
        self.address = Web3.to_checksum_address(address)
        self.side = side

    def read_execution_data(self) -> ExecutionData:
        """
        Read the ExecutionData stored in the escrow.

        This is the authoritative record: the fulfiller, for example, is only
        fixed once the destination escrow is deployed.
        """
        values = self.client.call_function(self.address, ESCROW_ABI, "executionData")
        return ExecutionData.from_abi_tuple(values)

    def withdraw(self, secret: str, execution_data: ExecutionData) -> str:
        """
        Submit withdraw(secret, executionData).

        Returns:
            Transaction hash

        Raises:
            TransactionError: rejected or reverted (e.g. already withdrawn)
            RPCError: chain unreachable
        """
        secret_bytes = bytes.fromhex(to_bytes32_hex(secret, "secret")[2:])
        log.info(f"[{self.client.chain_key}] Withdrawing {self.side.value} escrow {self.address} "
                 f"for {short_hex(execution_data.hashlock)}")
        return self.client.send_transaction(
            self.address, ESCROW_ABI, "withdraw", secret_bytes, execution_data.to_abi_tuple()
        )
