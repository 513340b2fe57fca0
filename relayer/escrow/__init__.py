"""
Escrow contract access: factory address prediction, per-swap escrows,
and event decoding for both.

Every swap has two escrows created by per-chain factories:
- EscrowSrc: holds the asker's tokens on the source chain, pays the fulfiller
- EscrowDst: holds the fulfiller's tokens on the destination chain, pays the asker

Both release funds to whoever presents the secret behind the shared hashlock.
"""

from .factory import EscrowFactory
from .escrow import Escrow, WithdrawalResult
from .events import (
    SrcEscrowCreated,
    DstEscrowCreated,
    SecretRevealed,
    decode_factory_log,
    decode_escrow_log,
)

__all__ = [
    "EscrowFactory",
    "Escrow",
    "WithdrawalResult",
    "SrcEscrowCreated",
    "DstEscrowCreated",
    "SecretRevealed",
    "decode_factory_log",
    "decode_escrow_log",
]
