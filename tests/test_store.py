"""
Review Broker: Session Store and Session Record Tests
"""

import os
import sys
import threading
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from broker.errors import DuplicateId, SessionNotFound
from broker.session import (
    END_CONVERSATION_MARKER,
    USE_ORIGINAL_MARKER,
    OutcomeKind,
    SessionRecord,
    SessionStatus,
    new_session_id,
    resolve_submission,
)
from broker.store import SessionStore


def _record(session_id=None, content="draft"):
    return SessionRecord(
        session_id=session_id or new_session_id(),
        current_content=content,
        fallback_content="orig",
    )


class TestSessionStore(unittest.TestCase):
    def setUp(self):
        self.store = SessionStore()

    def test_put_and_get(self):
        rec = _record()
        self.store.put(rec)
        self.assertIs(self.store.get(rec.session_id), rec)
        self.assertIn(rec.session_id, self.store)
        self.assertEqual(len(self.store), 1)

    def test_get_unknown_raises(self):
        with self.assertRaises(SessionNotFound) as ctx:
            self.store.get("missing")
        self.assertEqual(ctx.exception.session_id, "missing")

    def test_duplicate_id_fails_loudly(self):
        rec = _record("fixed")
        self.store.put(rec)
        with self.assertRaises(DuplicateId):
            self.store.put(_record("fixed", content="other"))
        self.assertEqual(self.store.get("fixed").current_content, "draft")

    def test_remove_is_idempotent(self):
        rec = _record()
        self.store.put(rec)
        self.assertIs(self.store.remove(rec.session_id), rec)
        self.assertIsNone(self.store.remove(rec.session_id))
        self.assertIsNone(self.store.remove("never-existed"))
        self.assertEqual(len(self.store), 0)

    def test_ids_snapshot(self):
        a, b = _record(), _record()
        self.store.put(a)
        self.store.put(b)
        ids = self.store.ids()
        self.store.remove(a.session_id)
        self.assertEqual(set(ids), {a.session_id, b.session_id})
        self.assertEqual(self.store.ids(), [b.session_id])

    def test_concurrent_puts(self):
        records = [_record() for _ in range(200)]

        def worker(chunk):
            for r in chunk:
                self.store.put(r)

        threads = [threading.Thread(target=worker, args=(records[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(self.store), 200)


class TestSessionRecord(unittest.TestCase):
    def test_ids_are_128_bit_hex_and_unique(self):
        ids = {new_session_id() for _ in range(500)}
        self.assertEqual(len(ids), 500)
        for sid in list(ids)[:10]:
            self.assertEqual(len(sid), 32)
            int(sid, 16)

    def test_defaults(self):
        rec = _record()
        self.assertEqual(rec.status, SessionStatus.PENDING)
        self.assertTrue(rec.is_pending)
        self.assertIsNone(rec.outcome)
        self.assertEqual(rec.revision, 0)
        self.assertAlmostEqual(rec.deadline, rec.created_at + 480, places=3)


class TestResolveSubmission(unittest.TestCase):
    def test_plain_text_is_edited(self):
        outcome = resolve_submission("my edit", "orig")
        self.assertEqual(outcome.kind, OutcomeKind.EDITED)
        self.assertEqual(outcome.content, "my edit")
        self.assertFalse(outcome.ends_conversation)

    def test_use_original_marker(self):
        outcome = resolve_submission(USE_ORIGINAL_MARKER, "orig")
        self.assertEqual(outcome.kind, OutcomeKind.ORIGINAL)
        self.assertEqual(outcome.content, "orig")

    def test_end_conversation_marker(self):
        outcome = resolve_submission(END_CONVERSATION_MARKER, "orig")
        self.assertEqual(outcome.kind, OutcomeKind.END_CONVERSATION)
        self.assertEqual(outcome.content, END_CONVERSATION_MARKER)
        self.assertTrue(outcome.ends_conversation)

    def test_empty_submission_is_literal(self):
        outcome = resolve_submission("", "orig")
        self.assertEqual(outcome.kind, OutcomeKind.EDITED)
        self.assertEqual(outcome.content, "")


if __name__ == "__main__":
    unittest.main()
