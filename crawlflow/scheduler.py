from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .adaptive import AdaptiveFetcher, AdaptiveModeSelector
from .base import Fetcher
from .config import CrawlerConfig
from .controller import ThreadPoolController
from .frontier import RequestFrontier
from .metrics import RunStatistics
from .models import FetchMode, Request, Response
from .router import PatternLike, Router
from .storage import MemoryRecordSink, Record, RecordSink

logger = logging.getLogger(__name__)

_SKIPPED_LINK_PREFIXES = ("#", "javascript:", "mailto:", "tel:")


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class Context:
    """What a route handler sees for one completed exchange."""

    def __init__(self, scheduler: "Scheduler", request: Request, response: Response) -> None:
        self._scheduler = scheduler
        self.request = request
        self.response = response
        self.metadata = dict(request.metadata)

    @property
    def mode(self) -> Optional[FetchMode]:
        value = self.response.timing.get("mode")
        return FetchMode(value) if value else None

    @property
    def html(self) -> BeautifulSoup:
        return self.response.html

    def query_selector_all(self, selector: str) -> List[Any]:
        return self.html.select(selector)

    def query_selector(self, selector: str) -> Optional[Any]:
        return self.html.select_one(selector)

    def enqueue(self, url_or_request: Union[str, Request], **options: Any) -> bool:
        return self._scheduler.enqueue(url_or_request, **options)

    def links(self, selector: str = "a") -> List[str]:
        """Absolute URLs of every matching element's href, in page order."""
        links = []
        for element in self.query_selector_all(selector):
            href = (element.get("href") or "").strip().strip("'\"")
            if not href or href.lower().startswith(_SKIPPED_LINK_PREFIXES):
                continue
            links.append(urljoin(self.response.url, href))
        return links

    def enqueue_links(self, selector: str = "a", **options: Any) -> int:
        """Enqueue every link matched by selector.

        Each call creates new requests, so pages that link to each other are
        re-enqueued; filter with links() to crawl each URL once.
        """
        links = self.links(selector)
        logger.debug("Enqueueing %d links from %s", len(links), self.response.url)
        return self._scheduler.enqueue_links(links, **options)

    def save_data(self, record: Record) -> Record:
        return self._scheduler.save_data(record)

    def add_light_pattern(self, pattern: PatternLike) -> bool:
        return self._selector().add_light_pattern(pattern)

    def add_heavy_pattern(self, pattern: PatternLike) -> bool:
        return self._selector().add_heavy_pattern(pattern)

    def _selector(self) -> AdaptiveModeSelector:
        selector = self._scheduler.selector
        if selector is None:
            raise RuntimeError("URL mode patterns require an adaptive fetcher")
        return selector


class Scheduler:
    """Bounded-concurrency crawl engine.

    run() pulls requests from the frontier on the calling thread and hands
    each one to a worker thread, never more than max_concurrency at a time.
    Per-request failures are retried or counted, never raised; run() always
    returns the statistics summary.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        config: Optional[CrawlerConfig] = None,
        frontier: Optional[RequestFrontier] = None,
        sink: Optional[RecordSink] = None,
        router: Optional[Router] = None,
    ) -> None:
        self._fetcher = fetcher
        self._config = config or CrawlerConfig()
        self._frontier = frontier or RequestFrontier()
        self._sink = sink or MemoryRecordSink()
        self.router = router or Router()
        self._stats = RunStatistics()
        self._stop_event = threading.Event()
        self._state = SchedulerState.IDLE
        self._controller: Optional[ThreadPoolController] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def config(self) -> CrawlerConfig:
        return self._config

    @property
    def frontier(self) -> RequestFrontier:
        return self._frontier

    @property
    def selector(self) -> Optional[AdaptiveModeSelector]:
        if isinstance(self._fetcher, AdaptiveFetcher):
            return self._fetcher.selector
        return None

    @property
    def in_flight(self) -> int:
        controller = self._controller
        return controller.active if controller is not None else 0

    def enqueue(self, url_or_request: Union[str, Request], **options: Any) -> bool:
        if isinstance(url_or_request, Request):
            request = url_or_request
        else:
            headers = dict(self._config.default_headers)
            headers.update(options.pop("headers", None) or {})
            request = Request(url=url_or_request, headers=headers, **options)
        return self._frontier.add(request)

    def enqueue_links(self, urls_or_requests: Iterable[Union[str, Request]], **options: Any) -> int:
        count = 0
        for item in urls_or_requests:
            if self.enqueue(item, **dict(options)):
                count += 1
        return count

    def save_data(self, record: Record) -> Record:
        return self._sink.push(record)

    def stop(self) -> None:
        """Stop dispatching new work; in-flight requests still complete.

        A stop requested before run() makes that run return without
        dispatching anything. The request is consumed when the run ends.
        """
        logger.info("Stop requested")
        self._stop_event.set()

    def close(self) -> None:
        """Release the fetcher's resources (e.g. the render thread)."""
        self._fetcher.close()

    def stats(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = self._stats.snapshot()
        summary["frontier"] = self._frontier.info()
        summary["sink"] = self._sink.info()
        summary["peak_concurrency"] = self._controller.peak if self._controller is not None else 0
        return summary

    def run(self, **overrides: Any) -> Dict[str, Any]:
        if self._state in (SchedulerState.RUNNING, SchedulerState.DRAINING):
            raise RuntimeError("scheduler is already running")
        config = self._config.with_overrides(**overrides) if overrides else self._config

        self._stats.reset()
        controller = ThreadPoolController(config.max_concurrency)
        controller.start()
        self._controller = controller
        self._state = SchedulerState.RUNNING
        logger.info("Starting run with max_concurrency=%d", config.max_concurrency)

        try:
            self._dispatch_loop(controller, config)
        finally:
            self._state = SchedulerState.DRAINING
            controller.stop(wait=True)
            self._state = SchedulerState.STOPPED
            self._stop_event.clear()

        summary = self.stats()
        logger.info(
            "Run finished: total=%d successful=%d failed=%d retried=%d",
            summary["requests_total"],
            summary["requests_successful"],
            summary["requests_failed"],
            summary["requests_retried"],
        )
        return summary

    def _dispatch_loop(self, controller: ThreadPoolController, config: CrawlerConfig) -> None:
        while not self._stop_event.is_set():
            if not controller.wait_for_capacity(timeout=config.poll_interval_secs or 0.1):
                continue
            if self._stop_event.is_set():
                break

            request = self._frontier.next()
            if request is None:
                if controller.active > 0:
                    controller.wait_idle(timeout=config.poll_interval_secs)
                    continue
                # Workers reclaim or enqueue before releasing their slot, so
                # with nothing active an empty frontier really is drained.
                if not self._frontier.is_empty():
                    continue
                if config.exit_on_empty_queue:
                    break
                self._stop_event.wait(config.idle_wait_secs)
                continue

            controller.submit(self._run_task, request, config)

    def _run_task(self, request: Request, config: CrawlerConfig) -> None:
        try:
            self._process_request(request, config)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error while settling %s", request.url)

    def _process_request(self, request: Request, config: CrawlerConfig) -> None:
        self._stats.record_attempt()
        try:
            response = self._fetcher.execute(request)
            if not response.success:
                reason = response.timing.get("error") or f"HTTP {response.status_code}"
                self._handle_failure(request, config, reason)
                return

            context = Context(self, request, response)
            self.router.dispatch(context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error processing %s", request.url)
            self._handle_failure(request, config, type(exc).__name__)
            return

        self._frontier.mark_handled(request.id)
        self._stats.record_success()

    def _handle_failure(self, request: Request, config: CrawlerConfig, reason: str) -> None:
        if request.retry_count < config.max_retries:
            logger.debug(
                "Retrying %s (%s), retry %d of %d",
                request.url,
                reason,
                request.retry_count + 1,
                config.max_retries,
            )
            self._stats.record_retry()
            self._frontier.reclaim(request)
            return

        logger.warning("Giving up on %s after %d retries (%s)", request.url, request.retry_count, reason)
        self._stats.record_failure()
        self._frontier.mark_handled(request.id)
