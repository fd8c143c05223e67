"""Tests for the ThreadPoolController class."""

import threading
import time
import unittest

from crawlflow.controller import ThreadPoolController


class TestThreadPoolController(unittest.TestCase):
    """Verify bounded submission and idle tracking."""

    def setUp(self):
        """Start a controller with a limit of two."""
        self.controller = ThreadPoolController(limit=2)
        self.controller.start()

    def tearDown(self):
        """Shut the pool down."""
        self.controller.stop(wait=True)

    def test_never_exceeds_limit(self):
        """At most `limit` tasks should run at the same time."""
        lock = threading.Lock()
        running = [0]
        observed = [0]

        def task():
            with lock:
                running[0] += 1
                observed[0] = max(observed[0], running[0])
            time.sleep(0.02)
            with lock:
                running[0] -= 1

        for _ in range(10):
            self.controller.submit(task)
        self.assertTrue(self.controller.wait_idle(timeout=5))
        self.assertLessEqual(observed[0], 2)
        self.assertLessEqual(self.controller.peak, 2)
        self.assertEqual(self.controller.active, 0)

    def test_slot_released_when_task_raises(self):
        """A failing task should still release its slot."""

        def boom():
            raise RuntimeError("boom")

        future = self.controller.submit(boom)
        with self.assertRaises(RuntimeError):
            future.result(timeout=5)
        self.assertTrue(self.controller.wait_idle(timeout=5))
        self.assertEqual(self.controller.active, 0)

    def test_wait_for_capacity_times_out_when_full(self):
        """wait_for_capacity should report False while all slots are busy."""
        gate = threading.Event()
        self.controller.submit(gate.wait)
        self.controller.submit(gate.wait)
        self.assertFalse(self.controller.wait_for_capacity(timeout=0.05))
        gate.set()
        self.assertTrue(self.controller.wait_for_capacity(timeout=5))

    def test_submit_after_stop_returns_none(self):
        """A stopped controller should refuse new work."""
        self.controller.stop(wait=True)
        self.assertIsNone(self.controller.submit(lambda: None))

    def test_limit_is_at_least_one(self):
        """A non-positive limit should be raised to one."""
        controller = ThreadPoolController(limit=0)
        self.assertEqual(controller.limit, 1)
        controller.stop()


if __name__ == "__main__":
    unittest.main()
