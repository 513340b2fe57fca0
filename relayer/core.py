"""
Core types and interfaces for the escrow relayer.
"""

import re
import time
import secrets
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, Tuple

from web3 import Web3


# =============================================================================
# Errors
# =============================================================================

class RelayerError(Exception):
    """Base class for relayer errors."""


class ValidationError(RelayerError, ValueError):
    """Malformed or missing input. Never retried."""


class SecretMismatchError(ValidationError):
    """The submitted secret does not hash to the hashlock."""


class NotFoundError(RelayerError, KeyError):
    """No swap is registered under the hashlock."""

    def __str__(self):
        return str(self.args[0]) if self.args else "not found"


class ForbiddenError(RelayerError):
    """Caller is not allowed to act on the swap."""


class RPCError(RelayerError):
    """Transient chain access failure (timeout, connection, RPC error)."""


class TransactionError(RelayerError):
    """A state-changing transaction failed to build, submit or execute."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ConfigurationError(RelayerError):
    """Relayer is missing a key, chain or setting it needs."""


class QueueFullError(RelayerError):
    """The settlement queue cannot accept more work."""


# =============================================================================
# Enums
# =============================================================================

class SwapStatus(Enum):
    """Swap lifecycle states."""
    CREATED = "created"       # Addresses predicted, waiting for deployments
    COMPLETED = "completed"   # Both withdrawals submitted and mined


class EscrowSide(Enum):
    """Which escrow of the pair."""
    SRC = "src"   # Holds the asker's tokens, pays the fulfiller
    DST = "dst"   # Holds the fulfiller's tokens, pays the asker


# =============================================================================
# Hex / integer coercion
# =============================================================================

ZERO_ADDRESS = "0x" + "0" * 40

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")


def short_hex(value: Optional[str], length: int = 10) -> str:
    """Truncate a hash for log lines."""
    if not value:
        return "<none>"
    return value[:length] + "..."


def to_bytes32_hex(value: Any, name: str = "value") -> str:
    """Normalize a 32-byte value to lower-case 0x-hex."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValidationError(f"{name} must be 32 bytes, got {len(value)}")
        return "0x" + bytes(value).hex()
    if not isinstance(value, str) or not _HEX_RE.match(value) or len(value) != 66:
        raise ValidationError(f"{name} must be a 0x-prefixed 32-byte hex string")
    return value.lower()


def to_address(value: Any, name: str = "address") -> str:
    """Normalize an address to its checksummed form."""
    if isinstance(value, (bytes, bytearray)) and len(value) == 20:
        return Web3.to_checksum_address("0x" + bytes(value).hex())
    if not isinstance(value, str) or not _HEX_RE.match(value) or len(value) != 42:
        raise ValidationError(f"{name} must be a 0x-prefixed 20-byte hex address")
    return Web3.to_checksum_address(value)


def to_uint(value: Any, name: str = "value") -> int:
    """
    Coerce a numeric field to a non-negative int.

    Accepts int, decimal strings and 0x-hex strings. Floats are refused:
    token amounts and chain ids do not survive a round trip through them.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            result = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise ValidationError(f"{name} is not an integer: {value!r}")
    else:
        raise ValidationError(f"{name} must be an integer or integer string, got {type(value).__name__}")
    if result < 0:
        raise ValidationError(f"{name} must be non-negative")
    return result


def to_hex_bytes(value: Any, name: str = "value") -> str:
    """Normalize an arbitrary-length bytes blob to 0x-hex."""
    if value is None:
        return "0x"
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if not isinstance(value, str) or not _HEX_RE.match(value) or len(value) % 2:
        raise ValidationError(f"{name} must be 0x-prefixed hex bytes")
    return value.lower()


# =============================================================================
# Execution data
# =============================================================================

# field name -> accepted wire aliases (the frontend spells fulfiller "fullfiller")
_FIELD_ALIASES = {
    "order_hash": ("orderHash", "order_hash"),
    "hashlock": ("hashlock",),
    "asker": ("asker",),
    "fulfiller": ("fullfiller", "fulfiller"),
    "src_token": ("srcToken", "src_token"),
    "dst_token": ("dstToken", "dst_token"),
    "src_chain_id": ("srcChainId", "src_chain_id"),
    "dst_chain_id": ("dstChainId", "dst_chain_id"),
    "asker_amount": ("askerAmount", "asker_amount"),
    "fulfiller_amount": ("fullfillerAmount", "fulfillerAmount", "fulfiller_amount"),
    "platform_fee": ("platformFee", "platform_fee"),
    "fee_collector": ("feeCollector", "fee_collector"),
    "timelocks": ("timelocks",),
    "parameters": ("parameters",),
}

_OPTIONAL_DEFAULTS = {
    "platform_fee": 0,
    "fee_collector": ZERO_ADDRESS,
    "parameters": "0x",
}


@dataclass(frozen=True)
class ExecutionData:
    """
    Canonical swap terms, as the factory and both escrows see them.

    Field order matches the on-chain struct; to_abi_tuple() relies on it.
    """
    order_hash: str
    hashlock: str
    asker: str
    fulfiller: str          # ZERO_ADDRESS means anyone may fulfil
    src_token: str
    dst_token: str
    src_chain_id: int
    dst_chain_id: int
    asker_amount: int
    fulfiller_amount: int
    platform_fee: int
    fee_collector: str
    timelocks: int          # Packed deadlines, enforced on-chain only
    parameters: str = "0x"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionData":
        """
        Build from a wire dict (camelCase or snake_case keys).

        Raises:
            ValidationError: a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValidationError("executionData must be an object")

        raw = {}
        missing = []
        for name, aliases in _FIELD_ALIASES.items():
            value = next((data[a] for a in aliases if data.get(a) is not None), None)
            if value is None:
                if name in _OPTIONAL_DEFAULTS:
                    value = _OPTIONAL_DEFAULTS[name]
                else:
                    missing.append(aliases[0])
                    continue
            raw[name] = value

        if missing:
            raise ValidationError(f"executionData missing required field(s): {', '.join(missing)}")

        return cls(
            order_hash=to_bytes32_hex(raw["order_hash"], "orderHash"),
            hashlock=to_bytes32_hex(raw["hashlock"], "hashlock"),
            asker=to_address(raw["asker"], "asker"),
            fulfiller=to_address(raw["fulfiller"], "fullfiller"),
            src_token=to_address(raw["src_token"], "srcToken"),
            dst_token=to_address(raw["dst_token"], "dstToken"),
            src_chain_id=to_uint(raw["src_chain_id"], "srcChainId"),
            dst_chain_id=to_uint(raw["dst_chain_id"], "dstChainId"),
            asker_amount=to_uint(raw["asker_amount"], "askerAmount"),
            fulfiller_amount=to_uint(raw["fulfiller_amount"], "fullfillerAmount"),
            platform_fee=to_uint(raw["platform_fee"], "platformFee"),
            fee_collector=to_address(raw["fee_collector"], "feeCollector"),
            timelocks=to_uint(raw["timelocks"], "timelocks"),
            parameters=to_hex_bytes(raw["parameters"], "parameters"),
        )

    @classmethod
    def from_abi_tuple(cls, values) -> "ExecutionData":
        """Rebuild from the tuple an escrow's executionData() view returns."""
        if isinstance(values, dict):
            values = tuple(values[name] for name in _FIELD_ALIASES)
        if len(values) != 14:
            raise ValidationError(f"executionData tuple has {len(values)} fields, expected 14")
        (order_hash, hashlock, asker, fulfiller, src_token, dst_token,
         src_chain_id, dst_chain_id, asker_amount, fulfiller_amount,
         platform_fee, fee_collector, timelocks, parameters) = values
        return cls(
            order_hash=to_bytes32_hex(order_hash, "orderHash"),
            hashlock=to_bytes32_hex(hashlock, "hashlock"),
            asker=to_address(asker, "asker"),
            fulfiller=to_address(fulfiller, "fullfiller"),
            src_token=to_address(src_token, "srcToken"),
            dst_token=to_address(dst_token, "dstToken"),
            src_chain_id=to_uint(src_chain_id, "srcChainId"),
            dst_chain_id=to_uint(dst_chain_id, "dstChainId"),
            asker_amount=to_uint(asker_amount, "askerAmount"),
            fulfiller_amount=to_uint(fulfiller_amount, "fullfillerAmount"),
            platform_fee=to_uint(platform_fee, "platformFee"),
            fee_collector=to_address(fee_collector, "feeCollector"),
            timelocks=to_uint(timelocks, "timelocks"),
            parameters=to_hex_bytes(parameters, "parameters"),
        )

    def to_abi_tuple(self) -> tuple:
        """Encode for factory / escrow calls (struct field order)."""
        return (
            bytes.fromhex(self.order_hash[2:]),
            bytes.fromhex(self.hashlock[2:]),
            Web3.to_checksum_address(self.asker),
            Web3.to_checksum_address(self.fulfiller),
            Web3.to_checksum_address(self.src_token),
            Web3.to_checksum_address(self.dst_token),
            int(self.src_chain_id),
            int(self.dst_chain_id),
            int(self.asker_amount),
            int(self.fulfiller_amount),
            int(self.platform_fee),
            Web3.to_checksum_address(self.fee_collector),
            int(self.timelocks),
            bytes.fromhex(self.parameters[2:]),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire format. Integers as decimal strings."""
        return {
            "orderHash": self.order_hash,
            "hashlock": self.hashlock,
            "asker": self.asker,
            "fullfiller": self.fulfiller,
            "srcToken": self.src_token,
            "dstToken": self.dst_token,
            "srcChainId": str(self.src_chain_id),
            "dstChainId": str(self.dst_chain_id),
            "askerAmount": str(self.asker_amount),
            "fullfillerAmount": str(self.fulfiller_amount),
            "platformFee": str(self.platform_fee),
            "feeCollector": self.fee_collector,
            "timelocks": str(self.timelocks),
            "parameters": self.parameters,
        }


# =============================================================================
# Swap records
# =============================================================================

@dataclass
class SwapRecord:
    """Registry entry for one swap, keyed by lower-cased hashlock."""
    chain_key: str                 # Chain the addresses were predicted on
    factory_address: str
    execution_data: ExecutionData
    src_escrow: str
    dst_escrow: str

    src_deployed: bool = False
    dst_deployed: bool = False
    status: SwapStatus = SwapStatus.CREATED
    completion_tx_hashes: Dict[str, str] = field(default_factory=dict)

    # Settlement bookkeeping
    settlement_attempts: int = 0
    last_error: Optional[str] = None

    created_at: int = field(default_factory=lambda: int(time.time()))
    updated_at: int = field(default_factory=lambda: int(time.time()))

    @property
    def hashlock(self) -> str:
        return self.execution_data.hashlock.lower()

    @property
    def can_claim(self) -> bool:
        return self.src_deployed and self.dst_deployed

    @property
    def is_completed(self) -> bool:
        return self.status == SwapStatus.COMPLETED

    def copy(self) -> "SwapRecord":
        return replace(self, completion_tx_hashes=dict(self.completion_tx_hashes))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "chainKey": self.chain_key,
            "factoryAddress": self.factory_address,
            "executionData": self.execution_data.to_dict(),
            "srcEscrow": self.src_escrow,
            "dstEscrow": self.dst_escrow,
            "srcDeployed": self.src_deployed,
            "dstDeployed": self.dst_deployed,
            "status": self.status.value,
            "settlementAttempts": self.settlement_attempts,
            "lastError": self.last_error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.completion_tx_hashes:
            data["completionTxHashes"] = {
                f"{side}TxHash": tx for side, tx in self.completion_tx_hashes.items()
            }
        return data


@dataclass
class PendingClaim:
    """A verified user-submitted secret waiting for settlement."""
    hashlock: str
    secret: str
    record: SwapRecord
    user_address: str
    timestamp: float = field(default_factory=time.time)


# =============================================================================
# Hashlock Utilities
# =============================================================================

def compute_hashlock(secret_hex: str) -> str:
    """keccak256(secret) as lower-case 0x-hex."""
    if not isinstance(secret_hex, str) or not _HEX_RE.match(secret_hex) or len(secret_hex) % 2:
        raise ValidationError("secret must be 0x-prefixed hex bytes")
    return Web3.to_hex(Web3.keccak(hexstr=secret_hex)).lower()


def verify_secret(secret_hex: str, hashlock_hex: str) -> bool:
    """
    Verify that keccak256(secret) == hashlock.

    Returns:
        True if valid, False on mismatch or malformed input
    """
    try:
        return compute_hashlock(secret_hex) == hashlock_hex.lower()
    except (ValidationError, AttributeError):
        return False


def generate_secret() -> Tuple[str, str]:
    """
    Generate a random 32-byte secret and its keccak256 hashlock.

    Returns:
        (secret_hex, hashlock_hex)
    """
    secret = "0x" + secrets.token_bytes(32).hex()
    return secret, compute_hashlock(secret)
