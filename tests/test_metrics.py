"""Tests for the RunStatistics class."""

import threading
import unittest

from crawlflow.metrics import RunStatistics


class TestRunStatistics(unittest.TestCase):
    """Verify counter recording and reset."""

    def test_empty_snapshot(self):
        """A fresh instance should report all zeros."""
        snap = RunStatistics().snapshot()
        self.assertEqual(
            snap,
            {"requests_total": 0, "requests_successful": 0, "requests_failed": 0, "requests_retried": 0},
        )

    def test_records_each_counter(self):
        """Each record_* call should bump its own counter."""
        stats = RunStatistics()
        stats.record_attempt()
        stats.record_attempt()
        stats.record_retry()
        stats.record_success()
        stats.record_failure()
        snap = stats.snapshot()
        self.assertEqual(snap["requests_total"], 2)
        self.assertEqual(snap["requests_retried"], 1)
        self.assertEqual(snap["requests_successful"], 1)
        self.assertEqual(snap["requests_failed"], 1)

    def test_snapshot_is_a_copy(self):
        """Mutating a snapshot should not affect the counters."""
        stats = RunStatistics()
        snap = stats.snapshot()
        snap["requests_total"] = 99
        self.assertEqual(stats.snapshot()["requests_total"], 0)

    def test_reset(self):
        """reset() should zero every counter."""
        stats = RunStatistics()
        stats.record_attempt()
        stats.record_failure()
        stats.reset()
        self.assertEqual(set(stats.snapshot().values()), {0})

    def test_concurrent_increments(self):
        """Counters should not lose updates under contention."""
        stats = RunStatistics()

        def worker():
            for _ in range(500):
                stats.record_attempt()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(stats.snapshot()["requests_total"], 4000)


if __name__ == "__main__":
    unittest.main()
