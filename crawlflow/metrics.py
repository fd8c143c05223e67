from __future__ import annotations

from threading import Lock
from typing import Dict


class RunStatistics:
    """Thread-safe request counters for one scheduler run.

    Counters only ever go up between reset() calls.
    """

    FIELDS = ("requests_total", "requests_successful", "requests_failed", "requests_retried")

    def __init__(self) -> None:
        self._lock = Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self.FIELDS}

    def reset(self) -> None:
        with self._lock:
            for name in self.FIELDS:
                self._counts[name] = 0

    def record_attempt(self) -> None:
        self._increment("requests_total")

    def record_success(self) -> None:
        self._increment("requests_successful")

    def record_failure(self) -> None:
        self._increment("requests_failed")

    def record_retry(self) -> None:
        self._increment("requests_retried")

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def _increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1
