"""
Settlement Executor for the escrow relayer.

Once the secret is known, pays out both sides of a swap:

1. Read ExecutionData from the destination escrow (authoritative on-chain copy)
2. withdraw(secret, data) on the destination escrow -> asker is paid
3. Read ExecutionData from the source escrow
4. withdraw(secret, data) on the source escrow -> fulfiller is paid
5. Both hashes recorded -> swap marked completed

Each side is attempted independently and its hash is stored as soon as it is
mined, so a later retry only redoes the side that is still missing. The
escrow contracts refuse a second withdrawal; that is the final guard against
double payment. On top of it, settlements for one hashlock never overlap.
"""

import time
import logging
import threading
from typing import Dict, Optional, Callable, List
from dataclasses import dataclass, field

from ..core import (
    SwapRecord, EscrowSide, RelayerError, RPCError, ConfigurationError, short_hex,
)
from ..chains.evm import EVMClient
from ..escrow.escrow import Escrow, WithdrawalResult
from .registry import SwapRegistry

log = logging.getLogger(__name__)


@dataclass
class SettlementConfig:
    """Settlement retry policy."""
    max_attempts: int = 3          # per side, per settle() call
    retry_backoff: float = 5.0     # seconds before the first retry
    backoff_multiplier: float = 2.0


@dataclass
class SettlementResult:
    """Outcome of one settle() call."""
    hashlock: str
    success: bool
    dst_tx_hash: Optional[str] = None
    src_tx_hash: Optional[str] = None
    withdrawals: List[WithdrawalResult] = field(default_factory=list)
    error: Optional[str] = None
    already_completed: bool = False


class SettlementExecutor:
    """
    Withdraws from both escrows of a swap given its secret.

    Safe to call concurrently from the chain monitors (secret revealed
    on-chain) and from claim workers (secret submitted by the asker).
    """

    def __init__(self, registry: SwapRegistry, clients: Dict[int, EVMClient],
                 config: SettlementConfig = None, sleep: Callable[[float], None] = time.sleep):
        self.registry = registry
        self.clients = clients          # by chain id
        self.config = config or SettlementConfig()
        self._sleep = sleep

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, hashlock: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(hashlock)
            if lock is None:
                lock = self._locks[hashlock] = threading.Lock()
            return lock

    def _forget_lock(self, hashlock: str, lock: threading.Lock):
        # late waiters on the old lock see the swap completed and return
        with self._locks_guard:
            if self._locks.get(hashlock) is lock:
                del self._locks[hashlock]

    def _client(self, chain_id: int) -> EVMClient:
        client = self.clients.get(chain_id)
        if client is None:
            raise ConfigurationError(f"No client configured for chain id {chain_id}")
        return client

    def settle(self, hashlock: str, secret: str, record: SwapRecord = None) -> SettlementResult:
        """
        Withdraw from both escrows.

        Never raises for chain-side failures. Unreachable nodes are retried
        per the config; rejected or reverted withdrawals fail at once. Either
        way the error is logged and recorded in the swap's last_error.

        Args:
            hashlock: Swap hashlock
            secret: Preimage revealed on-chain or submitted by the asker
            record: Caller's snapshot, registered if the registry has no entry

        Returns:
            SettlementResult
        """
        hashlock = hashlock.lower()
        lock = self._lock_for(hashlock)

        with lock:
            result = self._settle(hashlock, secret, record)

        if result.success:
            self._forget_lock(hashlock, lock)
        return result

    def _settle(self, hashlock: str, secret: str, record: Optional[SwapRecord]) -> SettlementResult:
        current = self.registry.get(hashlock)
        if current is None and record is not None:
            log.warning(f"Swap {short_hex(hashlock)} not in registry, registering the given snapshot")
            self.registry.upsert(record)
            current = self.registry.get(hashlock)
        if current is None:
            log.warning(f"settle: unknown swap {short_hex(hashlock)}")
            return SettlementResult(hashlock=hashlock, success=False, error="Swap not found")

        if current.is_completed:
            log.info(f"Swap {short_hex(hashlock)} already completed, nothing to do")
            return SettlementResult(
                hashlock=hashlock,
                success=True,
                dst_tx_hash=current.completion_tx_hashes.get(EscrowSide.DST.value),
                src_tx_hash=current.completion_tx_hashes.get(EscrowSide.SRC.value),
                already_completed=True,
            )

        self.registry.record_attempt(hashlock)
        log.info(f"Settling swap {short_hex(hashlock)}")

        result = SettlementResult(hashlock=hashlock, success=False)
        errors = []

        # Destination first: pays the asker, whose secret this is
        for side in (EscrowSide.DST, EscrowSide.SRC):
            done = current.completion_tx_hashes.get(side.value)
            if done:
                log.info(f"{side.value} side of {short_hex(hashlock)} already withdrawn: {done}")
                outcome = WithdrawalResult(success=True, side=side,
                                           escrow=self._escrow_address(current, side), tx_hash=done)
            else:
                outcome = self._withdraw_side(current, side, secret)
                if outcome.success:
                    self.registry.record_withdrawal(hashlock, side, outcome.tx_hash)
                else:
                    errors.append(f"{side.value}: {outcome.error}")

            result.withdrawals.append(outcome)
            if side == EscrowSide.DST:
                result.dst_tx_hash = outcome.tx_hash
            else:
                result.src_tx_hash = outcome.tx_hash

        if errors:
            result.error = "; ".join(errors)
            self.registry.record_error(hashlock, result.error)
            log.error(f"Settlement incomplete for {short_hex(hashlock)}: {result.error}")
            return result

        result.success = True
        log.info(f"Swap {short_hex(hashlock)} completed: dst={result.dst_tx_hash} src={result.src_tx_hash}")
        return result

    @staticmethod
    def _escrow_address(record: SwapRecord, side: EscrowSide) -> str:
        return record.dst_escrow if side == EscrowSide.DST else record.src_escrow

    def _withdraw_side(self, record: SwapRecord, side: EscrowSide, secret: str) -> WithdrawalResult:
        """
        Read canonical data and withdraw one escrow.

        Only RPCError is retried. A rejected or reverted withdrawal (already
        withdrawn, wrong secret) will not succeed on a second try, so it fails
        without sleeping on the caller's thread.
        """
        address = self._escrow_address(record, side)
        data = record.execution_data
        chain_id = data.dst_chain_id if side == EscrowSide.DST else data.src_chain_id

        try:
            escrow = Escrow(self._client(chain_id), address, side)
        except RelayerError as e:
            log.error(f"Cannot withdraw {side.value} escrow for {short_hex(record.hashlock)}: {e}")
            return WithdrawalResult(success=False, side=side, escrow=address, error=str(e))

        delay = self.config.retry_backoff
        last_error = None

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                onchain = escrow.read_execution_data()
                tx_hash = escrow.withdraw(secret, onchain)
                log.info(f"{side.value} withdrawal for {short_hex(record.hashlock)} mined: {tx_hash}")
                return WithdrawalResult(success=True, side=side, escrow=address, tx_hash=tx_hash)
            except RPCError as e:
                last_error = str(e)
                log.warning(f"{side.value} withdrawal for {short_hex(record.hashlock)} at {address} "
                            f"failed (attempt {attempt}/{self.config.max_attempts}): {e}")
            except RelayerError as e:
                log.error(f"{side.value} withdrawal for {short_hex(record.hashlock)} at {address} "
                          f"rejected: {e}")
                return WithdrawalResult(success=False, side=side, escrow=address, error=str(e))
            except Exception as e:
                log.exception(f"Unexpected error withdrawing {side.value} escrow {address}")
                return WithdrawalResult(success=False, side=side, escrow=address, error=str(e))

            if attempt < self.config.max_attempts:
                self._sleep(delay)
                delay *= self.config.backoff_multiplier

        return WithdrawalResult(success=False, side=side, escrow=address, error=last_error)
