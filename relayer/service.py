"""
Relayer service: wires clients, registry, monitors and settlement together
and exposes the operations the HTTP API calls.
"""

import logging
from typing import Dict, Optional, List, Tuple, Union, Any
from dataclasses import dataclass

from .core import (
    ExecutionData, SwapRecord, SwapStatus, EscrowSide, PendingClaim,
    ValidationError, ConfigurationError, short_hex,
)
from .config import RelayerConfig, DEFAULT_CHAIN_KEY
from .chains.evm import EVMClient
from .escrow.factory import EscrowFactory
from .swap.registry import SwapRegistry
from .swap.executor import SettlementExecutor
from .swap.watcher import ChainMonitor
from .swap.claims import ClaimIntake, SettlementQueue

log = logging.getLogger(__name__)


@dataclass
class SwapStatusReport:
    """Deployment status of one swap."""
    hashlock: str
    src_escrow: str
    dst_escrow: str
    src_deployed: bool
    dst_deployed: bool
    status: SwapStatus

    @property
    def can_claim(self) -> bool:
        return self.src_deployed and self.dst_deployed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hashlock": self.hashlock,
            "srcEscrow": self.src_escrow,
            "dstEscrow": self.dst_escrow,
            "srcDeployed": self.src_deployed,
            "dstDeployed": self.dst_deployed,
            "bothDeployed": self.can_claim,
            "canClaim": self.can_claim,
            "status": self.status.value,
        }


class RelayerService:
    """
    The relayer.

    Without a signing key it runs read-only: swaps can be created and
    inspected, but nothing is monitored or settled.
    """

    def __init__(self, config: RelayerConfig = None, clients: Dict[str, EVMClient] = None,
                 registry: SwapRegistry = None):
        self.config = config or RelayerConfig()
        self.registry = registry or SwapRegistry()

        if clients is None:
            clients = {
                key: EVMClient(chain, private_key=self.config.private_key)
                for key, chain in self.config.chains.items()
            }
        self.clients = clients

        self.executor = SettlementExecutor(
            self.registry,
            {client.chain_id: client for client in self.clients.values()},
            self.config.settlement,
        )
        self.monitors: List[ChainMonitor] = []
        self.queue: Optional[SettlementQueue] = None
        self.intake: Optional[ClaimIntake] = None

        if self.config.read_only:
            log.warning("RELAYER_PRIVATE_KEY not set, relayer is read-only "
                        "(no monitoring, no claims)")
            return

        self.queue = SettlementQueue(self.config.claim_workers, self.config.claim_queue_size)
        self.intake = ClaimIntake(self.registry, self.executor, self.queue)
        for key, client in self.clients.items():
            factory = client.config.factory_address
            if not factory:
                log.warning(f"[{key}] No factory address configured, not monitoring")
                continue
            self.monitors.append(
                ChainMonitor(client, factory, self.registry, self.executor, self.config.watcher)
            )

    @property
    def read_only(self) -> bool:
        return self.intake is None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self):
        if self.queue:
            self.queue.start()
        for monitor in self.monitors:
            monitor.start()
        log.info(f"Relayer started: {len(self.monitors)} monitor(s), "
                 f"read_only={self.read_only}")

    def stop(self):
        for monitor in self.monitors:
            monitor.stop()
        if self.queue:
            self.queue.stop()
        log.info("Relayer stopped")

    def health(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "readOnly": self.read_only,
            "swaps": len(self.registry),
            "pendingClaims": self.intake.pending_count() if self.intake else 0,
            "monitors": [m.snapshot() for m in self.monitors],
        }

    # =========================================================================
    # Swaps
    # =========================================================================

    def _client_for_key(self, chain_key: str) -> EVMClient:
        client = self.clients.get(chain_key)
        if client is None:
            raise ValidationError(f"Unknown chain: {chain_key}")
        return client

    def _client_for_id(self, chain_id: int, fallback_key: str = None) -> Optional[EVMClient]:
        for client in self.clients.values():
            if client.chain_id == chain_id:
                return client
        return self.clients.get(fallback_key) if fallback_key else None

    @staticmethod
    def _execution_data(execution_data: Union[ExecutionData, Dict[str, Any]]) -> ExecutionData:
        if isinstance(execution_data, ExecutionData):
            return execution_data
        return ExecutionData.from_dict(execution_data)

    def predict_addresses(self, chain_key: Optional[str], factory_address: Optional[str],
                          execution_data: Union[ExecutionData, Dict[str, Any]]) -> Tuple[str, str]:
        """
        Predict both escrow addresses on one chain's factory.

        Raises:
            ValidationError: unknown chain or malformed execution data
            RPCError: the factory could not be reached
        """
        data = self._execution_data(execution_data)
        chain_key = chain_key or DEFAULT_CHAIN_KEY
        client = self._client_for_key(chain_key)
        factory = EscrowFactory(client, factory_address or client.config.factory_address)
        return factory.predict_addresses(data)

    def create_swap(self, chain_key: Optional[str], factory_address: Optional[str],
                    execution_data: Union[ExecutionData, Dict[str, Any]]) -> SwapRecord:
        """Predict the escrow addresses and register the swap."""
        data = self._execution_data(execution_data)
        chain_key = chain_key or DEFAULT_CHAIN_KEY
        factory_address = factory_address or self._client_for_key(chain_key).config.factory_address
        src_escrow, dst_escrow = self.predict_addresses(chain_key, factory_address, data)

        record = SwapRecord(
            chain_key=chain_key,
            factory_address=factory_address,
            execution_data=data,
            src_escrow=src_escrow,
            dst_escrow=dst_escrow,
        )
        self.registry.upsert(record)
        return self.registry.get(record.hashlock)

    def record_swap(self, record: SwapRecord):
        self.registry.upsert(record)

    def list_swaps(self, status: Optional[str] = None) -> List[SwapRecord]:
        return self.registry.list(status)

    def get_swap(self, hashlock: str) -> SwapRecord:
        """Raises NotFoundError for an unknown hashlock."""
        return self.registry.require(hashlock)

    def get_swap_status(self, hashlock: str) -> SwapStatusReport:
        """
        Deployment status, checking bytecode for sides not yet seen deployed.

        A side found on-chain is flagged in the registry, covering events the
        monitors missed.

        Raises:
            NotFoundError: unknown hashlock
        """
        record = self.registry.require(hashlock)
        data = record.execution_data

        src_deployed = record.src_deployed or self._check_code(
            record, EscrowSide.SRC, data.src_chain_id, record.src_escrow)
        dst_deployed = record.dst_deployed or self._check_code(
            record, EscrowSide.DST, data.dst_chain_id, record.dst_escrow)

        latest = self.registry.get(hashlock) or record
        return SwapStatusReport(
            hashlock=record.hashlock,
            src_escrow=latest.src_escrow,
            dst_escrow=latest.dst_escrow,
            src_deployed=src_deployed,
            dst_deployed=dst_deployed,
            status=latest.status,
        )

    def _check_code(self, record: SwapRecord, side: EscrowSide, chain_id: int, address: str) -> bool:
        client = self._client_for_id(chain_id, record.chain_key)
        if client is None or not address:
            return False
        try:
            deployed = client.is_deployed(address)
        except Exception as e:
            log.warning(f"Bytecode check for {side.value} escrow {address} failed: {e}")
            return False

        if deployed:
            log.info(f"{side.value} escrow of {short_hex(record.hashlock)} found on-chain at {address}")
            self.registry.mark_deployed(record.hashlock, side)
        return deployed

    # =========================================================================
    # Claims
    # =========================================================================

    def submit_claim(self, secret: str, hashlock: str, user_address: str) -> PendingClaim:
        """
        Verify a user-submitted secret and schedule settlement.

        Raises:
            ConfigurationError: relayer is read-only
            (plus everything ClaimIntake.submit_claim raises)
        """
        if self.intake is None:
            raise ConfigurationError("Relayer is not configured to settle swaps")
        return self.intake.submit_claim(secret, hashlock, user_address)
