"""Adaptive choice between the light and heavy fetch paths.

The selector keeps two ordered pattern lists learned over a run. URLs that
match a heavy pattern are rendered in the browser; everything else goes over
plain HTTP first and is escalated when the page looks like it needs
scripts to produce its content.
"""
from __future__ import annotations

import logging
import re
import threading
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from .base import Fetcher
from .models import FetchMode, Request, Response
from .router import PatternLike, UrlPattern

logger = logging.getLogger(__name__)

SCRIPT_BLOCK_THRESHOLD = 5
MIN_TEXT_LENGTH = 1000

JS_INDICATORS = (
    "window.onload",
    "document.ready",
    "vue",
    "react",
    "angular",
    "loading...",
    "加载中",
    "please enable javascript",
    "please wait",
    "content is loading",
)

_SCRIPT_BLOCK = re.compile(r"<script[^>]*>(.*?)</script>", re.IGNORECASE | re.DOTALL)


def derive_pattern(url: str) -> str:
    """Coarse routing key: host[:port] plus the first two path segments.

    The host is lowercased and userinfo dropped; an explicit port is kept so
    services on different ports of one host are learned separately.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
        port = parts.port
    except ValueError:
        return url
    if not host:
        return url
    if port is not None:
        host = f"{host}:{port}"
    segments = [s for s in parts.path.split("/") if s][:2]
    if not segments:
        return host
    return host + "/" + "/".join(segments)


def needs_heavy_rendering(response: Response) -> bool:
    """Cheap guess at whether a light-fetched HTML page needs a browser.

    False positives and negatives are expected.
    """
    if not response.is_html:
        return False

    body = response.text.lower()
    if len(_SCRIPT_BLOCK.findall(body)) > SCRIPT_BLOCK_THRESHOLD:
        return True
    if any(indicator in body for indicator in JS_INDICATORS):
        return True

    soup = response.html
    root = soup.body if soup.body is not None else soup
    return len(root.get_text().strip()) < MIN_TEXT_LENGTH


class AdaptiveModeSelector:
    """Learned URL-pattern cache deciding which fetch mode serves a URL."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._patterns: Dict[FetchMode, List[UrlPattern]] = {
            FetchMode.HEAVY: [],
            FetchMode.LIGHT: [],
        }

    def select_mode(self, url: str) -> FetchMode:
        # Learned keys are built by derive_pattern, so match against that
        # form too; the raw URL may differ in host case.
        candidates = (url, derive_pattern(url))
        with self._lock:
            for mode in (FetchMode.HEAVY, FetchMode.LIGHT):
                for pattern in self._patterns[mode]:
                    if any(pattern.matches(c) for c in candidates):
                        return mode
        return FetchMode.LIGHT

    def add_pattern(self, mode: FetchMode, pattern: PatternLike) -> bool:
        compiled = UrlPattern.coerce(pattern)
        with self._lock:
            patterns = self._patterns[mode]
            if any(p.source == compiled.source for p in patterns):
                return False
            patterns.append(compiled)
            return True

    def add_heavy_pattern(self, pattern: PatternLike) -> bool:
        return self.add_pattern(FetchMode.HEAVY, pattern)

    def add_light_pattern(self, pattern: PatternLike) -> bool:
        return self.add_pattern(FetchMode.LIGHT, pattern)

    def record_success(self, url: str, mode: FetchMode) -> bool:
        return self.add_pattern(mode, derive_pattern(url))

    def patterns(self, mode: FetchMode) -> List[str]:
        with self._lock:
            return [p.source for p in self._patterns[mode]]


class AdaptiveFetcher(Fetcher):
    """Serves each request in the selected mode, escalating to heavy when needed."""

    def __init__(
        self,
        light: Fetcher,
        heavy: Fetcher,
        selector: Optional[AdaptiveModeSelector] = None,
    ) -> None:
        self._light = light
        self._heavy = heavy
        self.selector = selector or AdaptiveModeSelector()

    def fetch(self, request: Request) -> Response:
        mode = self.selector.select_mode(request.url)
        logger.debug("Serving %s in %s mode", request.url, mode.value)
        fetcher = self._heavy if mode is FetchMode.HEAVY else self._light
        response = fetcher.execute(request)

        if mode is FetchMode.LIGHT and not response.success and needs_heavy_rendering(response):
            logger.info("Escalating %s to heavy fetch (status %s)", request.url, response.status_code)
            self.selector.add_heavy_pattern(derive_pattern(request.url))
            mode = FetchMode.HEAVY
            response = self._heavy.execute(request)

        if response.success:
            self.selector.record_success(request.url, mode)
        return response

    def close(self) -> None:
        self._light.close()
        self._heavy.close()
