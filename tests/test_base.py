"""Tests for the Fetcher abstract class."""

import unittest

from crawlflow.base import Fetcher
from crawlflow.models import FetchMode, Request, Response


class TestFetcherExecute(unittest.TestCase):
    """Verify that Fetcher.execute() never lets transport errors escape."""

    def test_execute_returns_fetch_result(self):
        """A normal fetch() result should be returned unchanged."""

        class OkFetcher(Fetcher):
            def fetch(self, request):
                return Response(request=request, status_code=200, headers={}, body=b"ok")

        request = Request(url="https://example.com")
        response = OkFetcher().execute(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "ok")

    def test_execute_captures_exception_as_status_zero(self):
        """If fetch() raises, execute() should return a status-0 Response."""

        class FailingFetcher(Fetcher):
            mode = FetchMode.HEAVY

            def fetch(self, request):
                raise ConnectionError("network down")

        request = Request(url="https://example.com")
        response = FailingFetcher().execute(request)
        self.assertEqual(response.status_code, 0)
        self.assertFalse(response.success)
        self.assertEqual(response.body, b"")
        self.assertIs(response.request, request)
        self.assertEqual(response.timing["error"], "ConnectionError: network down")
        self.assertEqual(response.timing["mode"], "heavy")
        self.assertGreaterEqual(response.timing["duration_ms"], 0)

    def test_close_is_noop_by_default(self):
        """The base close() should be safe to call."""

        class OkFetcher(Fetcher):
            def fetch(self, request):
                return None

        OkFetcher().close()


if __name__ == "__main__":
    unittest.main()
