"""Tests for logging setup and formatters."""

import json
import logging
import os
import shutil
import sys
import tempfile
import unittest

from crawlflow.logger import ROOT_LOGGER_NAME, JsonFormatter, PlainFormatter, setup_logging


def _make_record(msg="hello %s", args=("world",), level=logging.INFO):
    """Helper to build a LogRecord from the package logger."""
    return logging.LogRecord(
        name="crawlflow.scheduler",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestFormatters(unittest.TestCase):
    """Verify the plain and JSON line formats."""

    def test_plain_format(self):
        """Plain lines should carry timestamp, level, logger name and message."""
        line = PlainFormatter().format(_make_record())
        self.assertTrue(line.startswith("[ "))
        self.assertIn(" UTC ", line)
        self.assertTrue(line.endswith("] : INFO : crawlflow.scheduler : hello world"))

    def test_json_format(self):
        """JSON lines should parse and keep non-ASCII text as-is."""
        line = JsonFormatter().format(_make_record(msg="加载中 %s", args=("ok",)))
        self.assertIn("加载中", line)
        payload = json.loads(line)
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["logger"], "crawlflow.scheduler")
        self.assertEqual(payload["message"], "加载中 ok")

    def test_exception_is_included(self):
        """Exception info should be rendered after the message."""
        try:
            raise ValueError("bad")
        except ValueError:
            record = _make_record()
            record.exc_info = sys.exc_info()
        self.assertIn("ValueError: bad", PlainFormatter().format(record))
        self.assertIn("ValueError: bad", json.loads(JsonFormatter().format(record))["exc_info"])


class TestSetupLogging(unittest.TestCase):
    """Verify package logger configuration."""

    def setUp(self):
        """Create a scratch directory."""
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        """Detach handlers so other tests see a clean logger."""
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_handlers_are_not_duplicated(self):
        """Calling setup twice should keep one handler and update the level."""
        logger = setup_logging(level=logging.INFO)
        self.assertEqual(len(logger.handlers), 1)
        setup_logging(level=logging.DEBUG)
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertFalse(logger.propagate)

    def test_log_file(self):
        """A log file should receive module logger output."""
        path = os.path.join(self.tmp, "crawl.log")
        setup_logging(level=logging.INFO, log_file=path, json_format=True)
        logging.getLogger("crawlflow.frontier").info("queued %d", 3)
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()
        with open(path, "r", encoding="utf-8") as f:
            payload = json.loads(f.readline())
        self.assertEqual(payload["message"], "queued 3")
        self.assertEqual(payload["logger"], "crawlflow.frontier")


if __name__ == "__main__":
    unittest.main()
