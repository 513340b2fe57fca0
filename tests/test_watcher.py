#!/usr/bin/env python3
"""
Chain monitor tests: deployment detection, secret reveal handling, block
cursor behaviour and failure isolation.
"""

import sys
import os
import time
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(__file__))

from helpers import (
    SECRET, HASHLOCK, FACTORY, DST_ESCROW, SEPOLIA_ID, BASE_SEPOLIA_ID,
    sample_data, sample_record, fake_client,
    src_created_log, dst_created_log, secret_revealed_log,
)

from relayer.core import RPCError, TransactionError, EscrowSide, SwapStatus, compute_hashlock
from relayer.swap.registry import SwapRegistry
from relayer.swap.executor import SettlementExecutor, SettlementResult
from relayer.swap.watcher import ChainMonitor, WatcherConfig, MonitorState, split_range

ACTUAL_DST = "0x" + "77" * 20


def _logs_by_address(mapping):
    """get_logs side effect: address -> list of logs (or an exception)."""
    def get_logs(address, from_block, to_block):
        value = mapping.get(address.lower(), [])
        if isinstance(value, Exception):
            raise value
        return value
    return get_logs


class TestSplitRange(unittest.TestCase):

    def test_single_chunk(self):
        self.assertEqual(split_range(10, 20, 2000), [(10, 20)])

    def test_bounded_chunks(self):
        self.assertEqual(split_range(1, 5000, 2000), [(1, 2000), (2001, 4000), (4001, 5000)])

    def test_empty(self):
        self.assertEqual(split_range(11, 10, 2000), [])


class TestMonitor(unittest.TestCase):

    def setUp(self):
        self.registry = SwapRegistry()
        self.registry.upsert(sample_record())
        self.client = fake_client(BASE_SEPOLIA_ID, "baseSepolia")
        self.client.get_block_number.return_value = 100
        self.executor = MagicMock()
        self.executor.settle.return_value = SettlementResult(hashlock=HASHLOCK, success=True)
        self.monitor = ChainMonitor(self.client, FACTORY, self.registry, self.executor,
                                    WatcherConfig(max_block_range=50))
        self.assertTrue(self.monitor.initialize())

    def test_initialize_starts_at_head(self):
        self.assertEqual(self.monitor.last_processed_block, 100)
        self.assertEqual(self.monitor.state, MonitorState.POLLING)

    def test_initialize_with_start_block(self):
        monitor = ChainMonitor(self.client, FACTORY, self.registry, self.executor,
                               WatcherConfig(start_block=40))
        monitor.initialize()
        self.assertEqual(monitor.last_processed_block, 39)

    def test_initialize_failure(self):
        self.client.get_block_number.side_effect = RPCError("connection refused")
        monitor = ChainMonitor(self.client, FACTORY, self.registry, self.executor)
        self.assertFalse(monitor.initialize())
        self.assertEqual(monitor.state, MonitorState.STARTING)
        self.assertIn("connection refused", monitor.last_error)

    def test_no_new_blocks(self):
        self.assertEqual(self.monitor.poll_once(), 0)
        self.client.get_logs.assert_not_called()

    def test_deployments_flag_record(self):
        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            FACTORY.lower(): [
                src_created_log(sample_data(), block=105),
                dst_created_log(ACTUAL_DST, HASHLOCK, block=106),
            ],
        })

        self.monitor.poll_once()

        record = self.registry.get(HASHLOCK)
        self.assertTrue(record.src_deployed)
        self.assertTrue(record.dst_deployed)
        self.assertEqual(record.dst_escrow.lower(), ACTUAL_DST)
        self.assertEqual(self.monitor.last_processed_block, 110)
        self.client.get_logs.assert_any_call(FACTORY, 101, 110)

    def test_unknown_hashlock_ignored(self):
        self.client.get_block_number.return_value = 110
        other = sample_data("0x" + "44" * 32)
        self.client.get_logs.side_effect = _logs_by_address({
            FACTORY.lower(): [src_created_log(other)],
        })

        self.monitor.poll_once()

        self.assertFalse(self.registry.get(HASHLOCK).src_deployed)
        self.assertEqual(len(self.registry), 1)

    def test_source_created_flags_only_its_swap(self):
        other_secret = "0x" + "44" * 32
        self.registry.upsert(sample_record(other_secret, src_escrow="0x" + "45" * 20))
        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            FACTORY.lower(): [src_created_log(sample_data(other_secret))],
        })

        self.monitor.poll_once()

        other = self.registry.get(compute_hashlock(other_secret))
        self.assertTrue(other.src_deployed)
        self.assertFalse(other.dst_deployed)
        self.assertFalse(self.registry.get(HASHLOCK).src_deployed)
        self.assertFalse(self.registry.get(HASHLOCK).dst_deployed)

    def test_secret_reveal_triggers_settlement(self):
        self.registry.mark_deployed(HASHLOCK, EscrowSide.SRC)
        self.registry.mark_deployed(HASHLOCK, EscrowSide.DST)
        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            DST_ESCROW.lower(): [secret_revealed_log(SECRET, HASHLOCK, block=108)],
        })

        self.monitor.poll_once()

        self.executor.settle.assert_called_once()
        hashlock, secret, record = self.executor.settle.call_args[0]
        self.assertEqual((hashlock, secret), (HASHLOCK, SECRET))
        self.assertEqual(record.hashlock, HASHLOCK)

    def test_reveal_with_wrong_secret_leaves_swap_open(self):
        """The escrows reject a preimage that does not hash to the hashlock."""
        wrong_secret = "0x" + "22" * 32
        self.registry.mark_deployed(HASHLOCK, EscrowSide.SRC)
        self.registry.mark_deployed(HASHLOCK, EscrowSide.DST)

        src_client = fake_client(SEPOLIA_ID, "sepolia")
        for client in (src_client, self.client):
            client.call_function.return_value = sample_data().to_abi_tuple()
            client.send_transaction.side_effect = TransactionError(
                f"[{client.chain_key}] withdraw() rejected: execution reverted: InvalidSecret")
        sleeps = []
        executor = SettlementExecutor(self.registry,
                                      {SEPOLIA_ID: src_client, BASE_SEPOLIA_ID: self.client},
                                      sleep=sleeps.append)
        monitor = ChainMonitor(self.client, FACTORY, self.registry, executor,
                               WatcherConfig(max_block_range=50))
        monitor.initialize()

        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            DST_ESCROW.lower(): [secret_revealed_log(wrong_secret, HASHLOCK, block=108)],
        })

        self.assertEqual(monitor.poll_once(), 1)

        secret_bytes = self.client.send_transaction.call_args[0][3]
        self.assertEqual(secret_bytes, b"\x22" * 32)
        src_client.send_transaction.assert_called_once()
        record = self.registry.get(HASHLOCK)
        self.assertEqual(record.status, SwapStatus.CREATED)
        self.assertEqual(record.completion_tx_hashes, {})
        self.assertIn("InvalidSecret", record.last_error)
        self.assertEqual(sleeps, [])
        self.assertEqual(monitor.last_processed_block, 110)

    def test_reveal_in_same_range_as_deployment(self):
        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            FACTORY.lower(): [dst_created_log(DST_ESCROW, HASHLOCK, block=104)],
            DST_ESCROW.lower(): [secret_revealed_log(SECRET, HASHLOCK, block=109)],
        })

        self.monitor.poll_once()

        self.executor.settle.assert_called_once()

    def test_reveal_only_checked_on_destination_chain(self):
        self.registry.mark_deployed(HASHLOCK, EscrowSide.DST)
        sepolia = fake_client(SEPOLIA_ID, "sepolia")
        sepolia.get_block_number.return_value = 110
        monitor = ChainMonitor(sepolia, FACTORY, self.registry, self.executor,
                               WatcherConfig(start_block=101))
        monitor.initialize()

        monitor.poll_once()

        sepolia.get_logs.assert_called_once_with(FACTORY, 101, 110)

    def test_completed_swaps_not_polled(self):
        self.registry.mark_deployed(HASHLOCK, EscrowSide.DST)
        self.registry.record_withdrawal(HASHLOCK, EscrowSide.DST, "0x1")
        self.registry.record_withdrawal(HASHLOCK, EscrowSide.SRC, "0x2")
        self.client.get_block_number.return_value = 110

        self.monitor.poll_once()

        self.client.get_logs.assert_called_once_with(FACTORY, 101, 110)

    def test_escrow_query_failure_is_isolated(self):
        second = sample_record("0x" + "55" * 32, dst_escrow="0x" + "66" * 20, dst_deployed=True)
        self.registry.upsert(second)
        self.registry.mark_deployed(HASHLOCK, EscrowSide.DST)
        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            DST_ESCROW.lower(): RPCError("timeout"),
            ("0x" + "66" * 20): [secret_revealed_log("0x" + "55" * 32, second.hashlock)],
        })

        self.monitor.poll_once()

        self.executor.settle.assert_called_once()
        self.assertEqual(self.executor.settle.call_args[0][0], second.hashlock)
        self.assertEqual(self.monitor.last_processed_block, 110)

    def test_settlement_crash_is_contained(self):
        self.registry.mark_deployed(HASHLOCK, EscrowSide.DST)
        self.executor.settle.side_effect = RuntimeError("boom")
        self.client.get_block_number.return_value = 110
        self.client.get_logs.side_effect = _logs_by_address({
            DST_ESCROW.lower(): [secret_revealed_log(SECRET, HASHLOCK)],
        })

        self.assertEqual(self.monitor.poll_once(), 1)
        self.assertEqual(self.monitor.last_processed_block, 110)

    def test_cursor_stops_before_failed_chunk(self):
        self.client.get_block_number.return_value = 220
        calls = []

        def get_logs(address, from_block, to_block):
            calls.append((from_block, to_block))
            if from_block == 151:
                raise RPCError("range too large")
            return []
        self.client.get_logs.side_effect = get_logs

        with self.assertRaises(RPCError):
            self.monitor.poll_once()

        self.assertEqual(calls, [(101, 150), (151, 200)])
        self.assertEqual(self.monitor.last_processed_block, 150)

        self.client.get_logs.side_effect = None
        self.client.get_logs.return_value = []
        self.monitor.poll_once()
        self.assertEqual(self.monitor.last_processed_block, 220)

    def test_snapshot(self):
        snap = self.monitor.snapshot()
        self.assertEqual(snap["chain"], "baseSepolia")
        self.assertEqual(snap["state"], "polling")
        self.assertEqual(snap["lastProcessedBlock"], 100)


class TestMonitorThread(unittest.TestCase):

    def test_start_and_stop(self):
        client = fake_client(BASE_SEPOLIA_ID, "baseSepolia")
        client.get_block_number.return_value = 5
        client.get_logs.return_value = []
        monitor = ChainMonitor(client, FACTORY, SwapRegistry(), MagicMock(),
                               WatcherConfig(poll_interval=0.01))

        monitor.start()
        try:
            for _ in range(200):
                if monitor.cycles:
                    break
                time.sleep(0.01)
        finally:
            monitor.stop(timeout=2.0)

        self.assertGreater(monitor.cycles, 0)
        self.assertEqual(monitor.state, MonitorState.STOPPED)

    def test_stop_interrupts_startup_retry(self):
        client = fake_client(BASE_SEPOLIA_ID, "baseSepolia")
        client.get_block_number.side_effect = RPCError("down")
        monitor = ChainMonitor(client, FACTORY, SwapRegistry(), MagicMock(),
                               WatcherConfig(startup_retry_delay=60))

        monitor.start()
        monitor.stop(timeout=2.0)

        self.assertFalse(monitor._thread.is_alive())


if __name__ == "__main__":
    unittest.main(verbosity=2)
