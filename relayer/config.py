"""
Relayer configuration.

Component configs live beside their components; RelayerConfig gathers them
and builds the whole set from environment variables.
"""

import os
import logging
from typing import Dict, Optional, Mapping, List
from dataclasses import dataclass, field

from .core import ConfigurationError
from .chains.evm import ChainConfig, RPC_ENDPOINTS, CHAIN_IDS
from .swap.watcher import WatcherConfig
from .swap.executor import SettlementConfig

log = logging.getLogger(__name__)


# Escrow factories (testnet deployments)
FACTORY_ADDRESSES = {
    "sepolia": "0xDC9110e9E4A530a28e97933a3D2b381B2dEc7596",
    "baseSepolia": "0x67c08F4936AeE457B44CACcf2934F15473214f0e",
}

# used when a request names no chain
DEFAULT_CHAIN_KEY = "sepolia"

# chain key -> (RPC url env var, factory env var)
_CHAIN_ENV = {
    "sepolia": ("SEPOLIA_RPC_URL", "SEPOLIA_FACTORY_ADDRESS"),
    "baseSepolia": ("BASE_SEPOLIA_RPC_URL", "BASE_SEPOLIA_FACTORY_ADDRESS"),
}


def default_chains() -> Dict[str, ChainConfig]:
    return {
        key: ChainConfig(
            key=key,
            chain_id=CHAIN_IDS[key],
            rpc_url=RPC_ENDPOINTS[key],
            factory_address=FACTORY_ADDRESSES[key],
        )
        for key in ("sepolia", "baseSepolia")
    }


def normalize_private_key(private_key: Optional[str]) -> Optional[str]:
    """
    Normalize a hex private key to 0x + 64 hex chars.

    Returns:
        The normalized key, or None if it is missing or the wrong length
    """
    if not private_key:
        return None
    key = private_key.strip()
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) != 66:
        return None
    return key


def _env_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class RelayerConfig:
    """Relayer configuration."""
    chains: Dict[str, ChainConfig] = field(default_factory=default_chains)
    private_key: Optional[str] = None
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    claim_workers: int = 4
    claim_queue_size: int = 100
    port: int = 8787
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def read_only(self) -> bool:
        return self.private_key is None

    def chain(self, key: str) -> ChainConfig:
        config = self.chains.get(key)
        if config is None:
            raise ConfigurationError(f"Unknown chain: {key}")
        return config

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None) -> "RelayerConfig":
        """
        Build a config from environment variables.

        Raises:
            ConfigurationError: a numeric variable does not parse
        """
        env = os.environ if env is None else env

        chains = default_chains()
        rpc_timeout = _env_number(env, "RELAYER_RPC_TIMEOUT", 20.0, float)
        for key, (rpc_var, factory_var) in _CHAIN_ENV.items():
            chain = chains[key]
            chain.rpc_url = env.get(rpc_var) or chain.rpc_url
            chain.factory_address = env.get(factory_var) or chain.factory_address
            chain.rpc_timeout = rpc_timeout

        raw_key = env.get("RELAYER_PRIVATE_KEY")
        private_key = normalize_private_key(raw_key)
        if raw_key and private_key is None:
            log.warning("RELAYER_PRIVATE_KEY is not a 32-byte hex key, ignoring it")

        watcher = WatcherConfig(
            poll_interval=_env_number(env, "RELAYER_POLL_INTERVAL", 10.0, float),
            max_block_range=_env_number(env, "RELAYER_MAX_BLOCK_RANGE", 2000, int),
            start_block=_env_number(env, "RELAYER_START_BLOCK", None, int),
        )
        settlement = SettlementConfig(
            max_attempts=_env_number(env, "RELAYER_SETTLE_MAX_ATTEMPTS", 3, int),
            retry_backoff=_env_number(env, "RELAYER_SETTLE_BACKOFF", 5.0, float),
        )

        origins = env.get("RELAYER_CORS_ORIGINS", "*")
        cors_origins = [o.strip() for o in origins.split(",") if o.strip()] or ["*"]

        return cls(
            chains=chains,
            private_key=private_key,
            watcher=watcher,
            settlement=settlement,
            claim_workers=_env_number(env, "RELAYER_CLAIM_WORKERS", 4, int),
            claim_queue_size=_env_number(env, "RELAYER_CLAIM_QUEUE_SIZE", 100, int),
            port=_env_number(env, "PORT", 8787, int),
            cors_origins=cors_origins,
        )
