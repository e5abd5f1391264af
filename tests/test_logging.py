"""
Review Broker: Structured Logging Tests

  - every line is valid JSON with the base schema
  - session events carry action + session_id as structured fields
  - level filtering drops events below the configured level
  - broker lifecycle emits created / transition events
"""

import io
import json
import logging
import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from broker.logging import (
    JSONFormatter,
    SessionEventLogger,
    configure_logging,
    get_logger,
)
from broker.rendezvous import SessionBroker


def _parse_log_lines(buf):
    buf.seek(0)
    return [json.loads(line) for line in buf.read().splitlines() if line.strip()]


class _LoggingTestCase(unittest.TestCase):
    level = "DEBUG"

    def setUp(self):
        self.buf = io.StringIO()
        configure_logging(level=self.level, stream=self.buf)

    def tearDown(self):
        root = logging.getLogger("review_broker")
        root.handlers.clear()
        root.setLevel(logging.NOTSET)
        root.propagate = True


class TestJSONSchema(_LoggingTestCase):
    def test_plain_log_line(self):
        get_logger("store").info("stored %d", 3)
        entries = _parse_log_lines(self.buf)
        self.assertEqual(len(entries), 1)
        e = entries[0]
        self.assertEqual(e["message"], "stored 3")
        self.assertEqual(e["level"], "INFO")
        self.assertEqual(e["logger"], "review_broker.store")
        self.assertEqual(e["service.name"], "review_broker")
        self.assertIn("timestamp", e)

    def test_exception_fields(self):
        try:
            raise ValueError("bad body")
        except ValueError:
            get_logger("api").error("failed", exc_info=True)
        e = _parse_log_lines(self.buf)[0]
        self.assertEqual(e["exception.type"], "ValueError")
        self.assertEqual(e["exception.message"], "bad body")

    def test_formatter_standalone(self):
        record = logging.LogRecord("x", logging.WARNING, "", 0, "hello", (), None)
        data = json.loads(JSONFormatter(service_name="svc").format(record))
        self.assertEqual(data["service.name"], "svc")
        self.assertEqual(data["message"], "hello")


class TestSessionEvents(_LoggingTestCase):
    def test_emit_structured_fields(self):
        SessionEventLogger().emit("session_created", "abc123", timeout_seconds=480)
        e = _parse_log_lines(self.buf)[0]
        self.assertEqual(e["action"], "session_created")
        self.assertEqual(e["session_id"], "abc123")
        self.assertEqual(e["timeout_seconds"], 480)
        self.assertEqual(e["message"], "session_created session=abc123")

    def test_reprocess_failed_is_warning(self):
        SessionEventLogger().reprocess_failed("abc123", "x" * 1000)
        e = _parse_log_lines(self.buf)[0]
        self.assertEqual(e["level"], "WARNING")
        self.assertEqual(len(e["error"]), 500)

    def test_broker_lifecycle_events(self):
        broker = SessionBroker()
        sid = broker.create("draft", "orig")
        broker.submit(sid, "done")
        entries = [e for e in _parse_log_lines(self.buf) if e.get("session_id") == sid]
        actions = [e["action"] for e in entries]
        self.assertEqual(actions, ["session_created", "session_transition"])
        self.assertEqual(entries[1]["from_status"], "pending")
        self.assertEqual(entries[1]["to_status"], "completed")
        self.assertEqual(entries[1]["actor"], "reviewer")


class TestLevelFiltering(_LoggingTestCase):
    level = "WARNING"

    def test_info_events_dropped(self):
        events = SessionEventLogger()
        events.created("abc", 480, 10)
        events.rejected("abc", "submit", "session not found")
        entries = _parse_log_lines(self.buf)
        self.assertEqual([e["action"] for e in entries], ["operation_rejected"])

    def test_reconfigure_replaces_handler(self):
        buf2 = io.StringIO()
        configure_logging(level="INFO", stream=buf2)
        get_logger("x").info("only in second")
        self.assertEqual(_parse_log_lines(self.buf), [])
        self.assertEqual(len(_parse_log_lines(buf2)), 1)


if __name__ == "__main__":
    unittest.main()
