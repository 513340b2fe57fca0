"""
Swap registry: the single source of truth for swap lifecycle state.

Shared by every chain monitor, the settlement executor and the API. All
access goes through one lock and reads hand out copies, so a completed
write is visible to every later read and nobody mutates a record in place.
"""

import time
import logging
import threading
from typing import Dict, List, Optional

from ..core import SwapRecord, SwapStatus, EscrowSide, NotFoundError, short_hex

log = logging.getLogger(__name__)


def _key(hashlock: str) -> str:
    return (hashlock or "").lower()


class SwapRegistry:
    """In-memory swap store keyed by lower-cased hashlock."""

    def __init__(self):
        self._records: Dict[str, SwapRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def upsert(self, record: SwapRecord):
        """
        Insert or replace the record for its hashlock.

        Deployment flags that are already set survive the replace, together
        with the escrow address observed on-chain, as does completion of an
        already completed swap.
        """
        key = record.hashlock
        stored = record.copy()

        with self._lock:
            previous = self._records.get(key)
            if previous is not None:
                if previous.src_deployed:
                    stored.src_deployed = True
                    stored.src_escrow = previous.src_escrow
                if previous.dst_deployed:
                    stored.dst_deployed = True
                    stored.dst_escrow = previous.dst_escrow
                if previous.is_completed and not stored.is_completed:
                    stored.status = previous.status
                    stored.completion_tx_hashes = dict(previous.completion_tx_hashes)
                stored.created_at = previous.created_at
            stored.updated_at = int(time.time())
            self._records[key] = stored
            total = len(self._records)

        log.info(f"{'Updated' if previous else 'Added new'} swap {short_hex(key)} "
                 f"asker={record.execution_data.asker} src={record.src_escrow} "
                 f"dst={record.dst_escrow} (total: {total})")

    def get(self, hashlock: str) -> Optional[SwapRecord]:
        """Get a copy of the record, or None."""
        with self._lock:
            record = self._records.get(_key(hashlock))
            return record.copy() if record else None

    def require(self, hashlock: str) -> SwapRecord:
        """Get a copy of the record or raise NotFoundError."""
        record = self.get(hashlock)
        if record is None:
            raise NotFoundError(f"Swap not found: {short_hex(hashlock)}")
        return record

    def list(self, status: Optional[str] = None) -> List[SwapRecord]:
        """All records (insertion order), optionally filtered by status value."""
        with self._lock:
            records = [r.copy() for r in self._records.values()]
        if status:
            records = [r for r in records if r.status.value == status]
        return records

    # =========================================================================
    # Mutations
    # =========================================================================

    def mark_deployed(self, hashlock: str, side: EscrowSide,
                      escrow: Optional[str] = None) -> Optional[SwapRecord]:
        """
        Flag one escrow as deployed. Flags only ever go False -> True.

        For the destination side, `escrow` replaces the predicted address with
        the one the factory actually emitted.

        Returns:
            Updated copy, or None if the hashlock is unknown
        """
        with self._lock:
            record = self._records.get(_key(hashlock))
            if record is None:
                return None

            if side == EscrowSide.SRC:
                record.src_deployed = True
                if escrow:
                    record.src_escrow = escrow
            else:
                record.dst_deployed = True
                if escrow:
                    record.dst_escrow = escrow
            record.updated_at = int(time.time())
            return record.copy()

    def record_withdrawal(self, hashlock: str, side: EscrowSide,
                          tx_hash: str) -> Optional[SwapRecord]:
        """
        Store one side's withdrawal hash. Completes the swap once both are in.
        """
        with self._lock:
            record = self._records.get(_key(hashlock))
            if record is None:
                return None

            record.completion_tx_hashes[side.value] = tx_hash
            if all(s.value in record.completion_tx_hashes for s in EscrowSide):
                record.status = SwapStatus.COMPLETED
                record.last_error = None
            record.updated_at = int(time.time())
            return record.copy()

    def record_attempt(self, hashlock: str) -> Optional[SwapRecord]:
        with self._lock:
            record = self._records.get(_key(hashlock))
            if record is None:
                return None
            record.settlement_attempts += 1
            record.updated_at = int(time.time())
            return record.copy()

    def record_error(self, hashlock: str, error: str) -> Optional[SwapRecord]:
        with self._lock:
            record = self._records.get(_key(hashlock))
            if record is None:
                return None
            record.last_error = error
            record.updated_at = int(time.time())
            return record.copy()
