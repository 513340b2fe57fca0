#!/usr/bin/env python3
"""
Claim intake tests: validation order, pending claim lifecycle and the
bounded settlement queue.
"""

import sys
import os
import threading
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(__file__))

from helpers import SECRET, HASHLOCK, ASKER, sample_record

from relayer.core import (
    ValidationError, SecretMismatchError, NotFoundError, ForbiddenError, QueueFullError,
    compute_hashlock,
)
from relayer.swap.registry import SwapRegistry
from relayer.swap.executor import SettlementResult
from relayer.swap.claims import ClaimIntake, SettlementQueue


class InlineQueue:
    """Collects jobs so tests decide when they run."""

    def __init__(self):
        self.jobs = []

    def submit(self, job):
        self.jobs.append(job)

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for job in jobs:
            job()


class TestClaimValidation(unittest.TestCase):

    def setUp(self):
        self.registry = SwapRegistry()
        self.registry.upsert(sample_record())
        self.executor = MagicMock()
        self.executor.settle.return_value = SettlementResult(hashlock=HASHLOCK, success=True)
        self.queue = InlineQueue()
        self.intake = ClaimIntake(self.registry, self.executor, self.queue)

    def test_missing_fields(self):
        for args in [(None, HASHLOCK, ASKER), (SECRET, "", ASKER), (SECRET, HASHLOCK, None)]:
            with self.subTest(args=args):
                with self.assertRaises(ValidationError) as ctx:
                    self.intake.submit_claim(*args)
                self.assertNotIsInstance(ctx.exception, SecretMismatchError)

    def test_wrong_secret(self):
        with self.assertRaises(SecretMismatchError):
            self.intake.submit_claim("0x" + "22" * 32, HASHLOCK, ASKER)

    def test_malformed_secret_is_a_mismatch(self):
        with self.assertRaises(SecretMismatchError):
            self.intake.submit_claim("hello", HASHLOCK, ASKER)

    def test_mismatch_checked_before_lookup(self):
        unknown = "0x" + "99" * 32
        with self.assertRaises(SecretMismatchError):
            self.intake.submit_claim(SECRET, unknown, ASKER)

    def test_unknown_swap(self):
        secret = "0x" + "33" * 32
        with self.assertRaises(NotFoundError):
            self.intake.submit_claim(secret, compute_hashlock(secret), ASKER)

    def test_only_asker_may_claim(self):
        with self.assertRaises(ForbiddenError):
            self.intake.submit_claim(SECRET, HASHLOCK, "0x" + "12" * 20)

    def test_asker_compared_case_insensitively(self):
        claim = self.intake.submit_claim(SECRET, "0x" + HASHLOCK[2:].upper(), "0x" + ASKER[2:].lower())
        self.assertEqual(claim.hashlock, HASHLOCK)

    def test_rejected_claims_schedule_nothing(self):
        with self.assertRaises(ForbiddenError):
            self.intake.submit_claim(SECRET, HASHLOCK, "0x" + "12" * 20)
        self.assertEqual(self.queue.jobs, [])
        self.assertEqual(self.intake.pending_count(), 0)


class TestClaimLifecycle(unittest.TestCase):

    def setUp(self):
        self.registry = SwapRegistry()
        self.registry.upsert(sample_record())
        self.executor = MagicMock()
        self.queue = InlineQueue()
        self.intake = ClaimIntake(self.registry, self.executor, self.queue)

    def test_pending_until_processed(self):
        self.executor.settle.return_value = SettlementResult(hashlock=HASHLOCK, success=True)

        claim = self.intake.submit_claim(SECRET, HASHLOCK, ASKER)

        self.assertIs(self.intake.pending(HASHLOCK), claim)
        self.assertEqual(claim.user_address, ASKER)
        self.assertEqual(claim.record.hashlock, HASHLOCK)
        self.executor.settle.assert_not_called()

        self.queue.run_all()

        self.executor.settle.assert_called_once_with(HASHLOCK, SECRET, claim.record)
        self.assertIsNone(self.intake.pending(HASHLOCK))

    def test_pending_removed_after_failure(self):
        self.executor.settle.return_value = SettlementResult(
            hashlock=HASHLOCK, success=False, error="dst: reverted")
        self.intake.submit_claim(SECRET, HASHLOCK, ASKER)
        self.queue.run_all()
        self.assertEqual(self.intake.pending_count(), 0)

    def test_pending_removed_after_crash(self):
        self.executor.settle.side_effect = RuntimeError("boom")
        self.intake.submit_claim(SECRET, HASHLOCK, ASKER)
        with self.assertRaises(RuntimeError):
            self.queue.run_all()
        self.assertEqual(self.intake.pending_count(), 0)

    def test_full_queue_rejects_claim(self):
        queue = MagicMock()
        queue.submit.side_effect = QueueFullError("full")
        intake = ClaimIntake(self.registry, self.executor, queue)

        with self.assertRaises(QueueFullError):
            intake.submit_claim(SECRET, HASHLOCK, ASKER)
        self.assertEqual(intake.pending_count(), 0)


class TestSettlementQueue(unittest.TestCase):

    def test_runs_jobs_on_workers(self):
        queue = SettlementQueue(workers=2, maxsize=10)
        done = threading.Event()
        seen = []

        queue.start()
        try:
            queue.submit(lambda: seen.append(threading.current_thread().name))
            queue.submit(done.set)
            self.assertTrue(done.wait(2.0))
        finally:
            queue.stop()

        self.assertTrue(seen[0].startswith("settle-"))
        self.assertFalse(queue.running)

    def test_failing_job_does_not_kill_worker(self):
        queue = SettlementQueue(workers=1, maxsize=10)
        done = threading.Event()

        def explode():
            raise RuntimeError("boom")

        queue.start()
        try:
            queue.submit(explode)
            queue.submit(done.set)
            self.assertTrue(done.wait(2.0))
        finally:
            queue.stop()

    def test_bounded(self):
        queue = SettlementQueue(workers=1, maxsize=2)   # not started
        queue.submit(lambda: None)
        queue.submit(lambda: None)
        with self.assertRaises(QueueFullError):
            queue.submit(lambda: None)
        self.assertEqual(queue.qsize(), 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
