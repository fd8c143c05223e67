from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List

from .models import Cookie, FetchMode, Request, Response

logger = logging.getLogger(__name__)


class ExchangeAdapter(ABC):
    """Fixed interface a fetch backend implements to expose what it received.

    Each backend represents cookies and headers its own way; adapters
    translate that into plain Cookie objects and a header dict so the core
    never has to inspect backend objects.
    """

    @abstractmethod
    def extract_cookies(self) -> List[Cookie]:
        ...

    @abstractmethod
    def extract_headers(self) -> Dict[str, str]:
        ...


class Fetcher(ABC):
    """Executes one Request and returns one Response.

    execute() never raises for transport problems: any exception from
    fetch() is turned into a Response with status 0 and the error recorded
    in its timing metadata.
    """

    mode: FetchMode = FetchMode.LIGHT

    def execute(self, request: Request) -> Response:
        start = time.time()
        try:
            return self.fetch(request)
        except Exception as exc:  # noqa: BLE001
            end = time.time()
            logger.debug("Fetch of %s failed: %s: %s", request.url, type(exc).__name__, exc)
            return Response(
                request=request,
                status_code=0,
                headers={},
                body=b"",
                url=request.url,
                timing={
                    "start_time": start,
                    "end_time": end,
                    "duration_ms": int((end - start) * 1000),
                    "mode": self.mode.value,
                    "error": f"{type(exc).__name__}: {exc}",
                },
            )

    @abstractmethod
    def fetch(self, request: Request) -> Response:
        ...

    def close(self) -> None:
        """Release backend resources; the default holds none."""

    @staticmethod
    def _timing(start: float, mode: FetchMode) -> Dict[str, object]:
        end = time.time()
        return {
            "start_time": start,
            "end_time": end,
            "duration_ms": int((end - start) * 1000),
            "mode": mode.value,
        }
