"""
Chain clients for the escrow relayer.

Each client provides a unified interface for:
- Reading block height, logs, bytecode and view functions
- Submitting signed contract calls from the relayer account
"""

from .evm import EVMClient, ChainConfig

__all__ = ["EVMClient", "ChainConfig"]
