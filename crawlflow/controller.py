from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional


class ThreadPoolController:
    """Bounded concurrent task execution on a thread pool.

    submit() blocks the caller while `limit` tasks are active, so the pool
    never runs more than `limit` tasks at once. The active counter is
    decremented exactly once per task, whatever the task does.
    """

    def __init__(self, limit: int, thread_name_prefix: str = "crawlflow-worker") -> None:
        self._limit = max(1, int(limit))
        self._executor = ThreadPoolExecutor(max_workers=self._limit, thread_name_prefix=thread_name_prefix)

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)

        self._active = 0
        self._peak = 0
        self._running = False

    def start(self) -> None:
        self._running = True

    def stop(self, wait: bool = True) -> None:
        with self._cv:
            self._running = False
            self._cv.notify_all()
        self._executor.shutdown(wait=wait, cancel_futures=False)

    def submit(self, fn: Callable[..., Any], *args: Any) -> Optional[Future]:
        """Run fn(*args) on the pool, blocking while at the concurrency limit.

        Returns None without running anything once the controller is stopped.
        """
        with self._cv:
            while self._running and self._active >= self._limit:
                self._cv.wait(timeout=0.5)

            if not self._running:
                return None

            self._active += 1
            self._peak = max(self._peak, self._active)

        try:
            return self._executor.submit(self._wrap_task, fn, *args)
        except RuntimeError:
            self._release()
            raise

    def wait_for_capacity(self, timeout: Optional[float] = None) -> bool:
        """Block until a slot is free; False if the timeout elapsed first."""
        with self._cv:
            return self._cv.wait_for(lambda: not self._running or self._active < self._limit, timeout=timeout)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no task is active; False if the timeout elapsed first."""
        with self._cv:
            return self._cv.wait_for(lambda: self._active == 0, timeout=timeout)

    def _wrap_task(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        finally:
            self._release()

    def _release(self) -> None:
        with self._cv:
            self._active = max(0, self._active - 1)
            self._cv.notify_all()

    @property
    def active(self) -> int:
        return self._active

    @property
    def peak(self) -> int:
        return self._peak

    @property
    def limit(self) -> int:
        return self._limit
