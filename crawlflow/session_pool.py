from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, Optional

from .config import CrawlerConfig
from .models import Cookie, Session


class SessionPool:
    """Per-destination cookie and identity state.

    get() hands out the same Session instance for a destination every time;
    callers may read its cookie list directly. A single lock covers the whole
    pool since session operations are short next to fetch latency.
    """

    def __init__(self, config: Optional[CrawlerConfig] = None) -> None:
        self._config = config or CrawlerConfig()
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def get(self, destination: str) -> Session:
        with self._lock:
            session = self._get_or_create(destination)
            session.usage_count += 1
            return session

    def update_cookies(self, destination: str, cookies: Iterable[Cookie]) -> Session:
        """Merge cookies into the destination's session, last write wins per name."""
        with self._lock:
            session = self._get_or_create(destination)
            for new_cookie in cookies:
                for index, existing in enumerate(session.cookies):
                    if existing.name == new_cookie.name:
                        session.cookies[index] = new_cookie
                        break
                else:
                    session.cookies.append(new_cookie)
            return session

    def cookie_header(self, destination: str) -> str:
        with self._lock:
            session = self._get_or_create(destination)
            return "; ".join(f"{c.name}={c.value}" for c in session.cookies if not c.is_expired)

    def clear(self, destination: Optional[str] = None) -> None:
        with self._lock:
            if destination is None:
                self._sessions.clear()
            else:
                self._sessions.pop(destination, None)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._sessions),
                "max_size": self._config.session_pool_size,
                "destinations": list(self._sessions),
                "usage": {d: s.usage_count for d, s in self._sessions.items()},
            }

    def _get_or_create(self, destination: str) -> Session:
        session = self._sessions.get(destination)
        if session is None:
            session = Session(
                destination=destination,
                user_agent=self._config.default_headers.get("User-Agent"),
            )
            self._sessions[destination] = session
        return session
