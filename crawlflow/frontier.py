from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .models import Request
from .storage import FrontierStore, MemoryFrontierStore

logger = logging.getLogger(__name__)


class RequestFrontier:
    """Deduplicated, retryable work queue over a FrontierStore.

    Dedup is by request identity, not by URL: resubmitting the same Request
    is rejected, a new Request for an already-seen URL is accepted. Retried
    requests go back to the front so they are serviced before older,
    never-tried work.
    """

    def __init__(self, store: Optional[FrontierStore] = None) -> None:
        self._store = store if store is not None else MemoryFrontierStore()
        self._lock = threading.Lock()

    def add(self, request: Request) -> bool:
        with self._lock:
            if self._store.contains(request.id):
                return False
            self._store.append(request.to_dict())
            return True

    def next(self) -> Optional[Request]:
        with self._lock:
            while True:
                record = self._store.pop()
                if record is None:
                    return None
                try:
                    return Request.from_dict(record)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.debug("Dropping malformed frontier record %r: %s", record, exc)

    def reclaim(self, request: Request) -> None:
        with self._lock:
            request.retry_count += 1
            self._store.prepend(request.to_dict())

    def mark_handled(self, request_id: str) -> bool:
        with self._lock:
            return self._store.mark_handled(request_id)

    def is_empty(self) -> bool:
        with self._lock:
            return self._store.pending_count() == 0

    def info(self) -> Dict[str, int]:
        with self._lock:
            pending = self._store.pending_count()
            handled = self._store.handled_count()
        return {
            "pending_count": pending,
            "handled_count": handled,
            "total_count": pending + handled,
        }
