"""Tests for the demo runner's default route and link following."""

import unittest

from crawlflow.base import Fetcher
from crawlflow.config import CrawlerConfig
from crawlflow.models import FetchMode, Response
from crawlflow.scheduler import Scheduler
from crawlflow.storage import MemoryRecordSink
from main import SeenUrls, enqueue_seeds, install_default_route

SITE = {
    "https://site.example/a": (
        "<html><head><title>A</title></head><body>"
        "<a href='/b'>B</a><a href='/a#top'>A again</a><a href='https://elsewhere.example/x'>out</a>"
        "</body></html>"
    ),
    "https://site.example/b": (
        "<html><head><title>B</title></head><body><a href='/a'>A</a><a href='b'>B</a></body></html>"
    ),
}


class _SiteFetcher(Fetcher):
    """Serves pages from an in-memory site and records fetched URLs."""

    def __init__(self):
        self.fetched = []

    def fetch(self, request):
        self.fetched.append(request.url)
        body = SITE.get(request.url)
        return Response(
            request=request,
            status_code=200 if body is not None else 404,
            headers={"Content-Type": "text/html"},
            body=body or "",
            timing={"mode": FetchMode.LIGHT.value, "duration_ms": 1},
        )


def _make_scheduler(follow_links):
    """Helper to build a scheduler with the runner's default route installed."""
    fetcher = _SiteFetcher()
    sink = MemoryRecordSink()
    config = CrawlerConfig(max_concurrency=2, max_retries=0, poll_interval_secs=0.01, idle_wait_secs=0.01)
    scheduler = Scheduler(fetcher, config, sink=sink)
    seen = SeenUrls()
    install_default_route(scheduler, follow_links, seen)
    return scheduler, fetcher, sink, seen


class TestSeenUrls(unittest.TestCase):
    """Verify URL claiming."""

    def test_claim_once(self):
        """A URL should be claimable once, ignoring its fragment."""
        seen = SeenUrls()
        self.assertTrue(seen.claim("https://site.example/a"))
        self.assertFalse(seen.claim("https://site.example/a#top"))
        self.assertFalse(seen.claim("https://site.example/a"))
        self.assertTrue(seen.claim("https://site.example/b"))
        self.assertEqual(len(seen), 2)


class TestDefaultRoute(unittest.TestCase):
    """Verify that the runner's crawl terminates and saves one record per page."""

    def test_mutually_linked_pages_are_fetched_once(self):
        """Pages linking to each other should each be crawled exactly once."""
        scheduler, fetcher, sink, seen = _make_scheduler(follow_links=True)
        self.assertEqual(enqueue_seeds(scheduler, ["https://site.example/a"], seen), 1)

        stats = scheduler.run()

        self.assertEqual(sorted(fetcher.fetched), ["https://site.example/a", "https://site.example/b"])
        self.assertEqual(stats["requests_total"], 2)
        self.assertEqual(stats["frontier"]["pending_count"], 0)
        self.assertEqual(sorted(r["title"] for r in sink.all()), ["A", "B"])

    def test_other_hosts_are_not_followed(self):
        """Links to a different host should not be enqueued."""
        scheduler, fetcher, _, seen = _make_scheduler(follow_links=True)
        enqueue_seeds(scheduler, ["https://site.example/a"], seen)
        scheduler.run()
        self.assertNotIn("https://elsewhere.example/x", fetcher.fetched)

    def test_duplicate_seeds_are_dropped(self):
        """The same seed listed twice should be enqueued once."""
        scheduler, _, _, seen = _make_scheduler(follow_links=False)
        count = enqueue_seeds(scheduler, ["https://site.example/a", "https://site.example/a"], seen)
        self.assertEqual(count, 1)

    def test_without_follow_links_only_seeds_are_crawled(self):
        """Link following is off unless requested."""
        scheduler, fetcher, sink, seen = _make_scheduler(follow_links=False)
        enqueue_seeds(scheduler, ["https://site.example/a"], seen)
        scheduler.run()
        self.assertEqual(fetcher.fetched, ["https://site.example/a"])
        record = sink.all()[0]
        self.assertEqual(record["status_code"], 200)
        self.assertEqual(record["mode"], "light")
        self.assertEqual(record["latency_ms"], 1)


if __name__ == "__main__":
    unittest.main()
