"""
Factory and escrow contract ABIs (minimal - only what the relayer touches).
"""

from web3 import Web3

# ExecutionData struct as taken by factory functions and escrow.withdraw()
EXECUTION_DATA_COMPONENTS = [
    {"name": "orderHash", "type": "bytes32"},
    {"name": "hashlock", "type": "bytes32"},
    {"name": "asker", "type": "address"},
    {"name": "fullfiller", "type": "address"},
    {"name": "srcToken", "type": "address"},
    {"name": "dstToken", "type": "address"},
    {"name": "srcChainId", "type": "uint256"},
    {"name": "dstChainId", "type": "uint256"},
    {"name": "askerAmount", "type": "uint256"},
    {"name": "fullfillerAmount", "type": "uint256"},
    {"name": "platformFee", "type": "uint256"},
    {"name": "feeCollector", "type": "address"},
    {"name": "timelocks", "type": "uint256"},
    {"name": "parameters", "type": "bytes"},
]

_EXECUTION_DATA_INPUT = {
    "name": "executionData",
    "type": "tuple",
    "components": EXECUTION_DATA_COMPONENTS,
}

FACTORY_ABI = [
    {
        "name": "addressOfEscrowSrc",
        "type": "function",
        "stateMutability": "view",
        "inputs": [_EXECUTION_DATA_INPUT],
        "outputs": [{"name": "", "type": "address"}]
    },
    {
        "name": "addressOfEscrowDst",
        "type": "function",
        "stateMutability": "view",
        "inputs": [_EXECUTION_DATA_INPUT],
        "outputs": [{"name": "", "type": "address"}]
    },
]

ESCROW_ABI = [
    {
        "name": "executionData",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "tuple", "components": EXECUTION_DATA_COMPONENTS}]
    },
    {
        "name": "withdraw",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "secret", "type": "bytes32"},
            _EXECUTION_DATA_INPUT,
        ],
        "outputs": []
    },
]

# =============================================================================
# Events
# =============================================================================
# All event fields are non-indexed: topics[0] is the signature hash and the
# payload lives entirely in data.

# The factory emits timelocks unpacked into four uint32 deadlines.
SRC_ESCROW_CREATED_TYPES = [
    "(bytes32,bytes32,address,address,address,address,uint256,uint256,"
    "uint256,uint256,uint256,address,(uint32,uint32,uint32,uint32),bytes)"
]
SRC_ESCROW_CREATED_SIGNATURE = "SrcEscrowCreated" + "(" + SRC_ESCROW_CREATED_TYPES[0] + ")"

DST_ESCROW_CREATED_TYPES = ["address", "bytes32", "address"]   # escrow, hashlock, asker
DST_ESCROW_CREATED_SIGNATURE = "DstEscrowCreated(address,bytes32,address)"

DST_SECRET_REVEALED_TYPES = ["bytes32", "bytes32"]             # secret, hashlock
DST_SECRET_REVEALED_SIGNATURE = "DstSecretRevealed(bytes32,bytes32)"


def event_topic(signature: str) -> bytes:
    """topics[0] for a non-anonymous event."""
    return bytes(Web3.keccak(text=signature))


SRC_ESCROW_CREATED_TOPIC = event_topic(SRC_ESCROW_CREATED_SIGNATURE)
DST_ESCROW_CREATED_TOPIC = event_topic(DST_ESCROW_CREATED_SIGNATURE)
DST_SECRET_REVEALED_TOPIC = event_topic(DST_SECRET_REVEALED_SIGNATURE)
