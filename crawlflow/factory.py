from __future__ import annotations

from typing import Optional

from .adaptive import AdaptiveFetcher, AdaptiveModeSelector
from .base import Fetcher
from .config import CrawlerConfig
from .fetchers import BrowserFetcher, HttpFetcher
from .session_pool import SessionPool


class FetcherFactory:
    """Builds fetchers by kind, all sharing one session pool and config.

    Kinds: "http" (light only), "browser" (heavy only) and "adaptive"
    (light first, escalating to heavy per learned URL patterns).
    """

    KINDS = ("http", "browser", "adaptive")

    def __init__(
        self,
        session_pool: Optional[SessionPool] = None,
        config: Optional[CrawlerConfig] = None,
        impersonate: Optional[str] = None,
    ) -> None:
        self._config = config or CrawlerConfig()
        self._session_pool = session_pool or SessionPool(self._config)
        self._impersonate = impersonate

    @property
    def session_pool(self) -> SessionPool:
        return self._session_pool

    def create_fetcher(self, kind: str, selector: Optional[AdaptiveModeSelector] = None) -> Fetcher:
        if kind == "http":
            return HttpFetcher(self._session_pool, self._config, impersonate=self._impersonate)
        if kind == "browser":
            return BrowserFetcher(self._session_pool, self._config)
        if kind == "adaptive":
            return AdaptiveFetcher(
                light=self.create_fetcher("http"),
                heavy=self.create_fetcher("browser"),
                selector=selector,
            )
        raise ValueError(f"Unknown fetcher kind: {kind} (expected one of {', '.join(self.KINDS)})")
