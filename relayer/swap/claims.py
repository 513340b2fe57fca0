"""
Claim intake: the direct path from a user-submitted secret to settlement.

The asker can hand the relayer the secret instead of waiting for the
DstSecretRevealed event. The claim is verified synchronously; settlement
happens later on a worker thread and its outcome is only observable via the
swap record.
"""

import queue
import logging
import threading
from typing import Dict, Optional, List, Callable

from ..core import (
    PendingClaim, ValidationError, SecretMismatchError, ForbiddenError,
    QueueFullError, compute_hashlock, short_hex,
)
from .registry import SwapRegistry
from .executor import SettlementExecutor

log = logging.getLogger(__name__)


class SettlementQueue:
    """
    Bounded job queue drained by a fixed pool of worker threads.

    Jobs are plain callables. A job that raises is logged and dropped; it
    never takes its worker down.
    """

    def __init__(self, workers: int = 4, maxsize: int = 100):
        self.workers = max(1, workers)
        self._queue: "queue.Queue[Optional[Callable[[], None]]]" = queue.Queue(maxsize=maxsize)
        self._threads: List[threading.Thread] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def qsize(self) -> int:
        return self._queue.qsize()

    def start(self):
        if self._running:
            return
        self._running = True
        for i in range(self.workers):
            thread = threading.Thread(target=self._worker, name=f"settle-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        log.info(f"Settlement queue started with {self.workers} workers")

    def stop(self, timeout: float = 5.0):
        """Let queued jobs drain, then stop the workers."""
        if not self._running:
            return
        self._running = False
        for _ in self._threads:
            self._queue.put(None)
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        log.info("Settlement queue stopped")

    def submit(self, job: Callable[[], None]):
        """
        Enqueue a job without blocking.

        Raises:
            QueueFullError: queue at capacity
        """
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            raise QueueFullError("Settlement queue is full, try again later")

    def _worker(self):
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                job()
            except Exception:
                log.exception("Settlement job failed")
            finally:
                self._queue.task_done()


class ClaimIntake:
    """Verifies claims and schedules their settlement."""

    def __init__(self, registry: SwapRegistry, executor: SettlementExecutor,
                 settlement_queue: SettlementQueue):
        self.registry = registry
        self.executor = executor
        self.queue = settlement_queue

        self._pending: Dict[str, PendingClaim] = {}
        self._lock = threading.Lock()

    def submit_claim(self, secret: str, hashlock: str, user_address: str) -> PendingClaim:
        """
        Verify a claim and schedule settlement.

        Checks run in order: all fields present, secret hashes to hashlock,
        swap exists, caller is the asker.

        Raises:
            ValidationError: a field is missing
            SecretMismatchError: keccak256(secret) != hashlock
            NotFoundError: no swap under the hashlock
            ForbiddenError: user_address is not the swap's asker
            QueueFullError: settlement queue at capacity
        """
        if not secret or not hashlock or not user_address:
            raise ValidationError("Missing required fields: secret, hashlock, userAddress")

        try:
            computed = compute_hashlock(secret)
        except ValidationError:
            raise SecretMismatchError("Invalid secret - hash does not match hashlock")
        if computed != hashlock.lower():
            raise SecretMismatchError("Invalid secret - hash does not match hashlock")

        record = self.registry.require(hashlock)

        if record.execution_data.asker.lower() != user_address.lower():
            raise ForbiddenError("Only the asker can claim this swap")

        claim = PendingClaim(
            hashlock=record.hashlock,
            secret=secret,
            record=record,
            user_address=user_address,
        )

        with self._lock:
            self._pending[claim.hashlock] = claim
        try:
            self.queue.submit(lambda: self._process(claim))
        except QueueFullError:
            self._discard(claim)
            raise

        log.info(f"Claim accepted for {short_hex(claim.hashlock)} from {user_address}")
        return claim

    def pending(self, hashlock: str) -> Optional[PendingClaim]:
        with self._lock:
            return self._pending.get((hashlock or "").lower())

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _discard(self, claim: PendingClaim):
        with self._lock:
            if self._pending.get(claim.hashlock) is claim:
                del self._pending[claim.hashlock]

    def _process(self, claim: PendingClaim):
        try:
            result = self.executor.settle(claim.hashlock, claim.secret, claim.record)
            if result.success:
                log.info(f"Claim for {short_hex(claim.hashlock)} settled")
            else:
                log.error(f"Claim for {short_hex(claim.hashlock)} not settled: {result.error}")
        finally:
            self._discard(claim)
