"""
Chain Monitor for the escrow relayer.

One monitor per chain, each in its own background thread. Every cycle it:
- Reads factory logs for escrow deployments (SrcEscrowCreated / DstEscrowCreated)
- Flags the matching swap sides as deployed
- Reads each deployed destination escrow on this chain for DstSecretRevealed
- Hands revealed secrets to the settlement executor

The block cursor only moves past ranges whose factory logs were fetched and
processed, so a failed cycle is retried in full (at-least-once delivery; the
registry and executor are idempotent).
"""

import logging
import threading
from enum import Enum
from typing import Optional, List, Tuple
from dataclasses import dataclass

from ..core import EscrowSide, short_hex
from ..chains.evm import EVMClient
from ..escrow.events import (
    SrcEscrowCreated, DstEscrowCreated, decode_factory_log, decode_escrow_log,
)
from .registry import SwapRegistry
from .executor import SettlementExecutor

log = logging.getLogger(__name__)


@dataclass
class WatcherConfig:
    """Monitor configuration."""
    poll_interval: float = 10.0        # seconds between cycles
    startup_retry_delay: float = 10.0  # seconds between RPC reachability checks
    max_block_range: int = 2000        # blocks per eth_getLogs query
    start_block: Optional[int] = None  # None = start at the current head


class MonitorState(Enum):
    """Monitor lifecycle states."""
    STARTING = "starting"   # Waiting for the RPC to answer
    POLLING = "polling"     # Last cycle succeeded
    BACKOFF = "backoff"     # Last cycle failed, retrying next interval
    STOPPED = "stopped"


def split_range(from_block: int, to_block: int, max_range: int) -> List[Tuple[int, int]]:
    """Split [from_block, to_block] into inclusive chunks of at most max_range blocks."""
    max_range = max(1, max_range)
    chunks = []
    start = from_block
    while start <= to_block:
        end = min(to_block, start + max_range - 1)
        chunks.append((start, end))
        start = end + 1
    return chunks


class ChainMonitor:
    """
    Polls one chain's factory and destination escrows.

    Never terminates on error: RPC failures are logged and the next cycle
    runs after the poll interval.
    """

    def __init__(self, client: EVMClient, factory_address: str, registry: SwapRegistry,
                 executor: SettlementExecutor, config: WatcherConfig = None):
        self.client = client
        self.factory_address = factory_address
        self.registry = registry
        self.executor = executor
        self.config = config or WatcherConfig()

        self.state = MonitorState.STOPPED
        self.last_processed_block: Optional[int] = None
        self.last_error: Optional[str] = None
        self.cycles = 0

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def chain_key(self) -> str:
        return self.client.chain_key

    def start(self):
        """Start monitoring in a background thread."""
        if self._thread and self._thread.is_alive():
            return

        self._stop.clear()
        self.state = MonitorState.STARTING
        self._thread = threading.Thread(
            target=self._run, name=f"monitor-{self.chain_key}", daemon=True
        )
        self._thread.start()
        log.info(f"[{self.chain_key}] Monitor started for factory {self.factory_address}")

    def stop(self, timeout: float = 5.0):
        """Stop monitoring. In-flight RPC calls finish or time out."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        self.state = MonitorState.STOPPED
        log.info(f"[{self.chain_key}] Monitor stopped")

    def snapshot(self) -> dict:
        return {
            "chain": self.chain_key,
            "state": self.state.value,
            "lastProcessedBlock": self.last_processed_block,
            "lastError": self.last_error,
            "cycles": self.cycles,
        }

    # =========================================================================
    # Loop
    # =========================================================================

    def _run(self):
        while not self._stop.is_set() and not self.initialize():
            log.info(f"[{self.chain_key}] Retrying RPC in {self.config.startup_retry_delay}s...")
            self._stop.wait(self.config.startup_retry_delay)

        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception as e:
                self.state = MonitorState.BACKOFF
                self.last_error = str(e)
                log.error(f"[{self.chain_key}] Poll cycle failed: {e}")
            self._stop.wait(self.config.poll_interval)

    def initialize(self) -> bool:
        """
        Check the RPC answers and place the block cursor.

        Returns:
            True once the monitor can poll
        """
        self.state = MonitorState.STARTING
        try:
            head = self.client.get_block_number()
        except Exception as e:
            self.last_error = str(e)
            log.error(f"[{self.chain_key}] RPC connectivity check failed: {e}")
            return False

        if self.config.start_block is not None:
            self.last_processed_block = max(0, self.config.start_block - 1)
        else:
            self.last_processed_block = head
        self.state = MonitorState.POLLING
        log.info(f"[{self.chain_key}] RPC reachable at block {head}, "
                 f"polling from block {self.last_processed_block + 1}")
        return True

    def poll_once(self) -> int:
        """
        Run one polling cycle up to the current head.

        Returns:
            Number of factory and secret events handled

        Raises:
            RPCError: block height or factory logs could not be fetched; the
                cursor stays before the failed range
        """
        if self.last_processed_block is None and not self.initialize():
            raise RuntimeError(f"[{self.chain_key}] monitor not initialized")

        current = self.client.get_block_number()
        self.cycles += 1
        if current <= self.last_processed_block:
            self.state = MonitorState.POLLING
            return 0

        handled = 0
        for start, end in split_range(self.last_processed_block + 1, current,
                                       self.config.max_block_range):
            handled += self._process_range(start, end)
            self.last_processed_block = end

        self.state = MonitorState.POLLING
        self.last_error = None
        return handled

    # =========================================================================
    # Per-range processing
    # =========================================================================

    def _process_range(self, from_block: int, to_block: int) -> int:
        log.debug(f"[{self.chain_key}] Checking blocks {from_block}-{to_block}")

        raw_logs = self.client.get_logs(self.factory_address, from_block, to_block)

        src_events = []
        dst_events = []
        for entry in raw_logs:
            event = decode_factory_log(entry)
            if isinstance(event, SrcEscrowCreated):
                src_events.append(event)
            elif isinstance(event, DstEscrowCreated):
                dst_events.append(event)

        for event in src_events:
            log.info(f"[{self.chain_key}] SrcEscrowCreated for {short_hex(event.hashlock)}")
            if self.registry.mark_deployed(event.hashlock, EscrowSide.SRC):
                log.info(f"[{self.chain_key}] Source escrow deployed for {short_hex(event.hashlock)}")

        for event in dst_events:
            log.info(f"[{self.chain_key}] DstEscrowCreated for {short_hex(event.hashlock)} at {event.escrow}")
            if self.registry.mark_deployed(event.hashlock, EscrowSide.DST, escrow=event.escrow):
                log.info(f"[{self.chain_key}] Destination escrow deployed for {short_hex(event.hashlock)}")

        reveals = self._check_secret_reveals(from_block, to_block)

        if src_events or dst_events:
            log.info(f"[{self.chain_key}] Processed {len(src_events)} SrcEscrowCreated and "
                     f"{len(dst_events)} DstEscrowCreated events in blocks {from_block}-{to_block}")

        return len(src_events) + len(dst_events) + reveals

    def _check_secret_reveals(self, from_block: int, to_block: int) -> int:
        """Scan this chain's deployed destination escrows for revealed secrets."""
        handled = 0

        for record in self.registry.list():
            if not record.dst_deployed or record.is_completed:
                continue
            if record.execution_data.dst_chain_id != self.client.chain_id:
                continue

            try:
                raw_logs = self.client.get_logs(record.dst_escrow, from_block, to_block)
            except Exception as e:
                log.warning(f"[{self.chain_key}] Error checking escrow {record.dst_escrow} "
                            f"for secret events: {e}")
                continue

            for entry in raw_logs:
                event = decode_escrow_log(entry)
                if event is None:
                    continue

                log.info(f"[{self.chain_key}] Secret revealed for {short_hex(event.hashlock)}")
                target = self.registry.get(event.hashlock) or record
                handled += 1

                try:
                    result = self.executor.settle(event.hashlock, event.secret, target)
                    if not result.success:
                        log.error(f"[{self.chain_key}] Settlement after reveal failed for "
                                  f"{short_hex(event.hashlock)}: {result.error}")
                except Exception:
                    log.exception(f"[{self.chain_key}] Settlement after reveal crashed for "
                                  f"{short_hex(event.hashlock)}")

        return handled
