"""
Swap coordination for the escrow relayer.

Tracks swaps, watches both chains for escrow deployments and secret
reveals, and settles swaps once the secret is known.
"""

from .registry import SwapRegistry
from .executor import SettlementExecutor, SettlementConfig, SettlementResult
from .watcher import ChainMonitor, WatcherConfig, MonitorState
from .claims import ClaimIntake, SettlementQueue

__all__ = [
    "SwapRegistry",
    "SettlementExecutor",
    "SettlementConfig",
    "SettlementResult",
    "ChainMonitor",
    "WatcherConfig",
    "MonitorState",
    "ClaimIntake",
    "SettlementQueue",
]
