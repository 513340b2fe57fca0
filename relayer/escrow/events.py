"""
Factory and escrow event decoding.

Logs are classified by topics[0] first; only a log whose signature hash is
known gets a structured decode. Foreign logs (other emitters, other events)
return None without raising.
"""

import logging
from typing import Optional, Any, Union
from dataclasses import dataclass

from eth_abi import decode as abi_decode
from web3 import Web3

from ..core import short_hex
from .abi import (
    SRC_ESCROW_CREATED_TOPIC, SRC_ESCROW_CREATED_TYPES,
    DST_ESCROW_CREATED_TOPIC, DST_ESCROW_CREATED_TYPES,
    DST_SECRET_REVEALED_TOPIC, DST_SECRET_REVEALED_TYPES,
)

log = logging.getLogger(__name__)


@dataclass
class LogPosition:
    """Where an event came from."""
    address: str
    block_number: int
    log_index: int
    tx_hash: Optional[str] = None


@dataclass
class SrcEscrowCreated:
    hashlock: str
    asker: str
    position: LogPosition


@dataclass
class DstEscrowCreated:
    escrow: str        # Actual deployed address, authoritative over predictions
    hashlock: str
    asker: str
    position: LogPosition


@dataclass
class SecretRevealed:
    secret: str
    hashlock: str
    position: LogPosition


FactoryEvent = Union[SrcEscrowCreated, DstEscrowCreated]


def _as_bytes(value: Any) -> bytes:
    """Log fields arrive as HexBytes, bytes or 0x-strings depending on provider."""
    if value is None:
        return b""
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


def _position(entry) -> LogPosition:
    tx_hash = entry.get("transactionHash")
    return LogPosition(
        address=Web3.to_checksum_address(entry["address"]),
        block_number=int(entry.get("blockNumber") or 0),
        log_index=int(entry.get("logIndex") or 0),
        tx_hash=Web3.to_hex(_as_bytes(tx_hash)) if tx_hash is not None else None,
    )


def _topic0(entry) -> Optional[bytes]:
    topics = entry.get("topics") or []
    if not topics:
        return None
    return _as_bytes(topics[0])


def _hex32(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def decode_factory_log(entry) -> Optional[FactoryEvent]:
    """
    Decode a factory log into SrcEscrowCreated / DstEscrowCreated.

    Returns:
        The event, or None for unknown or malformed logs
    """
    topic = _topic0(entry)
    if topic == SRC_ESCROW_CREATED_TOPIC:
        try:
            (execution_data,) = abi_decode(SRC_ESCROW_CREATED_TYPES, _as_bytes(entry["data"]))
            return SrcEscrowCreated(
                hashlock=_hex32(execution_data[1]),
                asker=Web3.to_checksum_address(execution_data[2]),
                position=_position(entry),
            )
        except Exception as e:
            log.warning(f"Malformed SrcEscrowCreated log at block {entry.get('blockNumber')}: {e}")
            return None

    if topic == DST_ESCROW_CREATED_TOPIC:
        try:
            escrow, hashlock, asker = abi_decode(DST_ESCROW_CREATED_TYPES, _as_bytes(entry["data"]))
            return DstEscrowCreated(
                escrow=Web3.to_checksum_address(escrow),
                hashlock=_hex32(hashlock),
                asker=Web3.to_checksum_address(asker),
                position=_position(entry),
            )
        except Exception as e:
            log.warning(f"Malformed DstEscrowCreated log at block {entry.get('blockNumber')}: {e}")
            return None

    return None


def decode_escrow_log(entry) -> Optional[SecretRevealed]:
    """Decode a destination escrow log into SecretRevealed, or None."""
    if _topic0(entry) != DST_SECRET_REVEALED_TOPIC:
        return None
    try:
        secret, hashlock = abi_decode(DST_SECRET_REVEALED_TYPES, _as_bytes(entry["data"]))
    except Exception as e:
        log.warning(f"Malformed DstSecretRevealed log at block {entry.get('blockNumber')}: {e}")
        return None

    event = SecretRevealed(secret=_hex32(secret), hashlock=_hex32(hashlock), position=_position(entry))
    log.debug(f"DstSecretRevealed for {short_hex(event.hashlock)} at block {event.position.block_number}")
    return event
