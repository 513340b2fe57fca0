"""
friendswap relayer - Cross-chain escrow swap relayer

Watches escrow factories on two EVM chains, tracks each swap's escrow pair,
and withdraws from both escrows once the swap's secret is revealed, either
on-chain or submitted directly by the asker.

Usage:
    from relayer import RelayerConfig, RelayerService

    service = RelayerService(RelayerConfig.from_env())
    service.start()

    record = service.create_swap("sepolia", None, execution_data)
    report = service.get_swap_status(record.hashlock)
    service.submit_claim(secret, record.hashlock, asker_address)
"""

from .core import (
    ExecutionData,
    SwapRecord,
    SwapStatus,
    EscrowSide,
    PendingClaim,
    RelayerError,
    ValidationError,
    SecretMismatchError,
    NotFoundError,
    ForbiddenError,
    RPCError,
    TransactionError,
    ConfigurationError,
    QueueFullError,
    compute_hashlock,
    verify_secret,
    generate_secret,
)

from .chains.evm import EVMClient, ChainConfig
from .config import RelayerConfig, normalize_private_key
from .swap.registry import SwapRegistry
from .swap.executor import SettlementExecutor, SettlementConfig, SettlementResult
from .swap.watcher import ChainMonitor, WatcherConfig, MonitorState
from .swap.claims import ClaimIntake, SettlementQueue
from .service import RelayerService, SwapStatusReport

__version__ = "0.1.0"
__all__ = [
    # Core types
    "ExecutionData",
    "SwapRecord",
    "SwapStatus",
    "EscrowSide",
    "PendingClaim",
    # Errors
    "RelayerError",
    "ValidationError",
    "SecretMismatchError",
    "NotFoundError",
    "ForbiddenError",
    "RPCError",
    "TransactionError",
    "ConfigurationError",
    "QueueFullError",
    # Utilities
    "compute_hashlock",
    "verify_secret",
    "generate_secret",
    "normalize_private_key",
    # Clients / config
    "EVMClient",
    "ChainConfig",
    "RelayerConfig",
    # Swap
    "SwapRegistry",
    "SettlementExecutor",
    "SettlementConfig",
    "SettlementResult",
    "ChainMonitor",
    "WatcherConfig",
    "MonitorState",
    "ClaimIntake",
    "SettlementQueue",
    "RelayerService",
    "SwapStatusReport",
]
