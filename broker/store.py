"""
Review Broker: Session Store

Thread-safe in-memory registry of pending session records, keyed by id.
Holds only pending records; the broker removes a record the moment it
reaches a terminal state. A single lock is enough for the expected
cardinality (tens of concurrent reviews).
"""

from __future__ import annotations

import logging
import threading

from broker.errors import DuplicateId, SessionNotFound
from broker.session import SessionRecord

logger = logging.getLogger("review_broker.store")


class SessionStore:
    """Thread-safe in-memory session registry."""

    def __init__(self):
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: SessionRecord) -> None:
        with self._lock:
            if record.session_id in self._records:
                raise DuplicateId(record.session_id)
            self._records[record.session_id] = record
        logger.debug("Stored session %s (%d live)", record.session_id, len(self))

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return record

    def remove(self, session_id: str) -> SessionRecord | None:
        """Remove a record. Removing an unknown id is a no-op."""
        with self._lock:
            return self._records.pop(session_id, None)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
