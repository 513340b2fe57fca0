"""
EVM RPC Client for the escrow relayer.

Thin web3.py wrapper covering the five things the relayer needs from a chain:
block height, logs, bytecode, view calls and signed transactions.
"""

import logging
import threading
from typing import Optional, Any, List
from dataclasses import dataclass

from web3 import Web3
from eth_account import Account

from ..core import RPCError, TransactionError, ConfigurationError

log = logging.getLogger(__name__)


# RPC endpoints
RPC_ENDPOINTS = {
    "sepolia": "https://ethereum-sepolia.therpc.io",
    "baseSepolia": "https://base-sepolia-rpc.publicnode.com",
}

CHAIN_IDS = {
    "sepolia": 11155111,
    "baseSepolia": 84532,
}


@dataclass
class ChainConfig:
    """EVM chain configuration."""
    key: str = "sepolia"
    chain_id: int = 11155111
    rpc_url: str = ""
    factory_address: str = ""
    rpc_timeout: float = 20.0        # seconds, per HTTP request
    receipt_timeout: float = 120.0   # seconds to wait for a mined receipt
    gas_price_multiplier: float = 1.1


class EVMClient:
    """
    One client per chain.

    The relayer account is shared across chains, so transaction submission
    is serialized per client to keep pending nonces sequential.
    """

    def __init__(self, config: ChainConfig, private_key: Optional[str] = None, web3=None):
        self.config = config
        self.rpc_url = config.rpc_url or RPC_ENDPOINTS.get(config.key, "")
        self._web3 = web3
        self._account = Account.from_key(private_key) if private_key else None
        self._tx_lock = threading.Lock()

    @property
    def chain_key(self) -> str:
        return self.config.key

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    @property
    def web3(self):
        """Lazy-load web3 instance."""
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(
                self.rpc_url,
                request_kwargs={"timeout": self.config.rpc_timeout},
            ))
        return self._web3

    @property
    def account(self):
        if self._account is None:
            raise ConfigurationError(f"[{self.chain_key}] no relayer key configured")
        return self._account

    @property
    def can_sign(self) -> bool:
        return self._account is not None

    def _rpc(self, what: str, fn, *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            raise RPCError(f"[{self.chain_key}] {what} failed: {e}") from e

    def _contract(self, address: str, abi: list):
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_block_number(self) -> int:
        """Get current block number."""
        return int(self._rpc("eth_blockNumber", lambda: self.web3.eth.block_number))

    def get_logs(self, address: str, from_block: int, to_block: int) -> List[Any]:
        """Fetch all logs emitted by one address in [from_block, to_block]."""
        params = {
            "address": Web3.to_checksum_address(address),
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        return list(self._rpc("eth_getLogs", self.web3.eth.get_logs, params))

    def get_code(self, address: str) -> bytes:
        """Get deployed bytecode (empty for EOAs and undeployed addresses)."""
        code = self._rpc("eth_getCode", self.web3.eth.get_code, Web3.to_checksum_address(address))
        return bytes(code or b"")

    def is_deployed(self, address: str) -> bool:
        return len(self.get_code(address)) > 0

    def call_function(self, address: str, abi: list, name: str, *args) -> Any:
        """eth_call a view function."""
        def _call():
            return self._contract(address, abi).functions[name](*args).call()
        return self._rpc(f"{name}() call", _call)

    # =========================================================================
    # Writes
    # =========================================================================

    def send_transaction(self, address: str, abi: list, name: str, *args) -> str:
        """
        Build, sign, broadcast a contract call and wait for it to be mined.

        Returns:
            Transaction hash (0x-hex)

        Raises:
            TransactionError: gas estimation rejected the call, or it reverted
            RPCError: the node could not be reached
        """
        account = self.account
        w3 = self.web3
        fn = self._contract(address, abi).functions[name](*args)

        with self._tx_lock:
            nonce = self._rpc("eth_getTransactionCount",
                              w3.eth.get_transaction_count, account.address, "pending")
            gas_price = int(self._rpc("eth_gasPrice", lambda: w3.eth.gas_price)
                            * self.config.gas_price_multiplier)

            try:
                # gas is estimated here; a call that would revert fails now
                tx = fn.build_transaction({
                    "from": account.address,
                    "nonce": nonce,
                    "gasPrice": gas_price,
                    "chainId": self.chain_id,
                })
            except Exception as e:
                raise TransactionError(f"[{self.chain_key}] {name}() rejected: {e}") from e

            signed = account.sign_transaction(tx)
            tx_hash = self._rpc("eth_sendRawTransaction",
                                w3.eth.send_raw_transaction, signed.raw_transaction)

        tx_hex = Web3.to_hex(tx_hash)
        log.info(f"[{self.chain_key}] {name}() TX: {tx_hex}")

        receipt = self._rpc("receipt wait", w3.eth.wait_for_transaction_receipt,
                            tx_hash, timeout=self.config.receipt_timeout)
        if receipt["status"] != 1:
            raise TransactionError(f"[{self.chain_key}] {name}() reverted", tx_hash=tx_hex)

        return tx_hex
