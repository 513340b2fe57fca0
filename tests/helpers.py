"""
Shared fixtures for relayer tests: sample swaps, fake chain clients and
ABI-encoded logs. Nothing here touches a network.
"""

import os
import sys
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from eth_abi import encode as abi_encode
from web3 import Web3

from relayer.core import ExecutionData, SwapRecord, compute_hashlock
from relayer.escrow.abi import (
    SRC_ESCROW_CREATED_TOPIC, SRC_ESCROW_CREATED_TYPES,
    DST_ESCROW_CREATED_TOPIC, DST_ESCROW_CREATED_TYPES,
    DST_SECRET_REVEALED_TOPIC, DST_SECRET_REVEALED_TYPES,
)

SEPOLIA_ID = 11155111
BASE_SEPOLIA_ID = 84532

SECRET = "0x" + "11" * 32
HASHLOCK = compute_hashlock(SECRET)

ASKER = Web3.to_checksum_address("0x" + "a1" * 20)
FULFILLER = Web3.to_checksum_address("0x" + "b2" * 20)
SRC_TOKEN = Web3.to_checksum_address("0x" + "c3" * 20)
DST_TOKEN = Web3.to_checksum_address("0x" + "d4" * 20)
FACTORY = Web3.to_checksum_address("0x" + "e5" * 20)
SRC_ESCROW = Web3.to_checksum_address("0x" + "5a" * 20)
DST_ESCROW = Web3.to_checksum_address("0x" + "da" * 20)


def sample_wire(secret: str = SECRET, **overrides) -> dict:
    """ExecutionData as the frontend posts it."""
    data = {
        "orderHash": "0x" + "0f" * 32,
        "hashlock": compute_hashlock(secret),
        "asker": ASKER.lower(),
        "fullfiller": FULFILLER,
        "srcToken": SRC_TOKEN,
        "dstToken": DST_TOKEN,
        "srcChainId": str(SEPOLIA_ID),
        "dstChainId": str(BASE_SEPOLIA_ID),
        "askerAmount": "1000000000000000000000",
        "fullfillerAmount": "2500000",
        "platformFee": "0",
        "feeCollector": "0x" + "00" * 20,
        "timelocks": "0",
        "parameters": "0x",
    }
    data.update(overrides)
    return data


def sample_data(secret: str = SECRET, **overrides) -> ExecutionData:
    return ExecutionData.from_dict(sample_wire(secret, **overrides))


def sample_record(secret: str = SECRET, **fields) -> SwapRecord:
    record = SwapRecord(
        chain_key="sepolia",
        factory_address=FACTORY,
        execution_data=sample_data(secret),
        src_escrow=SRC_ESCROW,
        dst_escrow=DST_ESCROW,
    )
    for name, value in fields.items():
        setattr(record, name, value)
    return record


def fake_client(chain_id: int = SEPOLIA_ID, key: str = "sepolia") -> MagicMock:
    """MagicMock standing in for an EVMClient."""
    client = MagicMock()
    client.chain_id = chain_id
    client.chain_key = key
    client.config.factory_address = FACTORY
    client.can_sign = True
    return client


# =============================================================================
# Log encoding
# =============================================================================

def _log(address: str, topic: bytes, data: bytes, block: int = 100, index: int = 0) -> dict:
    return {
        "address": address,
        "topics": [topic],
        "data": data,
        "blockNumber": block,
        "logIndex": index,
        "transactionHash": bytes([block % 256]) * 32,
    }


def src_created_log(data: ExecutionData, block: int = 100, address: str = FACTORY) -> dict:
    values = list(data.to_abi_tuple())
    values[12] = (100, 200, 300, 400)     # timelocks as emitted
    payload = abi_encode(SRC_ESCROW_CREATED_TYPES, [tuple(values)])
    return _log(address, SRC_ESCROW_CREATED_TOPIC, payload, block)


def dst_created_log(escrow: str, hashlock: str, asker: str = ASKER,
                    block: int = 100, address: str = FACTORY) -> dict:
    payload = abi_encode(DST_ESCROW_CREATED_TYPES, [escrow, bytes.fromhex(hashlock[2:]), asker])
    return _log(address, DST_ESCROW_CREATED_TOPIC, payload, block)


def secret_revealed_log(secret: str, hashlock: str, block: int = 100,
                        address: str = DST_ESCROW) -> dict:
    payload = abi_encode(DST_SECRET_REVEALED_TYPES,
                         [bytes.fromhex(secret[2:]), bytes.fromhex(hashlock[2:])])
    return _log(address, DST_SECRET_REVEALED_TOPIC, payload, block)
