from __future__ import annotations

import argparse
import json
import logging
import threading
from urllib.parse import urldefrag, urlsplit

from crawlflow.config import CrawlerConfig
from crawlflow.factory import FetcherFactory
from crawlflow.frontier import RequestFrontier
from crawlflow.logger import setup_logging
from crawlflow.models import normalize_url
from crawlflow.scheduler import Context, Scheduler
from crawlflow.storage import clear_storage, open_key_value_store, open_storage


DEFAULT_SEED_URLS = ["https://example.com"]
RUN_STATS_KEY = "RUN_STATS"


def _load_urls(path: str, limit: int = 100) -> list[str]:
    urls: list[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            urls.append(url)
            if len(urls) >= limit:
                break
    if not urls:
        raise ValueError(f"No URLs found in {path}")
    return urls


class SeenUrls:
    """URLs the runner has already enqueued, ignoring fragments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._urls: set[str] = set()

    def claim(self, url: str) -> bool:
        """True the first time a URL is seen, False afterwards."""
        key = urldefrag(normalize_url(url))[0]
        with self._lock:
            if key in self._urls:
                return False
            self._urls.add(key)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


def install_default_route(scheduler: Scheduler, follow_links: bool, seen: SeenUrls) -> None:
    @scheduler.router.default
    def save_page(context: Context) -> None:
        title = context.query_selector("title") if context.response.is_html else None
        context.save_data(
            {
                "url": context.response.url,
                "status_code": context.response.status_code,
                "mode": context.mode.value if context.mode else None,
                "title": title.get_text(strip=True) if title is not None else None,
                "latency_ms": context.response.timing.get("duration_ms"),
            }
        )
        if not (follow_links and context.response.is_html):
            return
        host = context.request.domain
        for url in context.links("a"):
            if urlsplit(url).hostname == host and seen.claim(url):
                context.enqueue(url)


def enqueue_seeds(scheduler: Scheduler, urls: list[str], seen: SeenUrls) -> int:
    return scheduler.enqueue_links(url for url in urls if seen.claim(url))


def build_scheduler(
    config: CrawlerConfig,
    mode: str,
    impersonate: str | None,
    follow_links: bool,
) -> tuple[Scheduler, SeenUrls]:
    store, sink = open_storage(config.storage_dir)
    factory = FetcherFactory(config=config, impersonate=impersonate)
    scheduler = Scheduler(
        fetcher=factory.create_fetcher(mode),
        config=config,
        frontier=RequestFrontier(store),
        sink=sink,
    )
    seen = SeenUrls()
    install_default_route(scheduler, follow_links, seen)
    return scheduler, seen


def run_demo(
    urls: list[str],
    mode: str,
    config: CrawlerConfig,
    impersonate: str | None,
    follow_links: bool,
) -> dict:
    scheduler, seen = build_scheduler(config, mode, impersonate, follow_links)
    enqueue_seeds(scheduler, urls, seen)
    try:
        stats = scheduler.run()
    finally:
        scheduler.close()
    open_key_value_store(config.storage_dir).set(RUN_STATS_KEY, stats)
    return stats


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--run-demo", action="store_true", help="Crawl the seed URLs and print run statistics")

    parser.add_argument("--mode", default="adaptive", choices=FetcherFactory.KINDS, help="Fetch path to use")
    parser.add_argument("--urls", default=None, help="Path to a file with one seed URL per line")
    parser.add_argument("--limit", type=int, default=100, help="Max number of seed URLs to load")
    parser.add_argument("--follow-links", action="store_true", help="Enqueue links found on crawled pages")
    parser.add_argument("--impersonate", default=None, help="curl_cffi browser target for the light fetcher, e.g. chrome120")

    parser.add_argument("--max-concurrency", type=int, default=10, help="Max requests in flight")
    parser.add_argument("--max-retries", type=int, default=3, help="Retries per request before giving up")
    parser.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds")
    parser.add_argument("--storage-dir", default="./storage", help="Directory for the request queue and dataset")
    parser.add_argument("--purge-storage", action="store_true", help="Clear the request queue, dataset and key-value store before crawling")

    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-file", default=None, help="Optional log file path")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")

    args = parser.parse_args()

    setup_logging(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        log_file=args.log_file,
        json_format=args.json_logs,
    )

    if args.run_demo:
        config = CrawlerConfig(
            max_concurrency=args.max_concurrency,
            max_retries=args.max_retries,
            request_timeout=args.timeout,
            storage_dir=args.storage_dir,
        )
        if args.purge_storage:
            clear_storage(config.storage_dir)
        urls = _load_urls(args.urls, limit=args.limit) if args.urls else DEFAULT_SEED_URLS
        stats = run_demo(urls, args.mode, config, args.impersonate, args.follow_links)
        print(json.dumps(stats, ensure_ascii=False, indent=2))
        return

    print("Nothing to do. Use --run-demo to run the demo.")


if __name__ == "__main__":
    main()
