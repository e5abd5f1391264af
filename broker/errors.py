"""
Review Broker: Error Taxonomy

Every failure a broker operation can produce is a typed exception.
The gateway maps these to HTTP payloads, the caller side maps
SessionTimeout to its fallback path.

  SessionNotFound    unknown or already reaped id (non-retriable)
  DuplicateId        store insert collided with a live id
  AlreadyResolved    submit lost the race to another transition
  SessionResolved    reprocess against a session that left pending
  ComputationFailed  enhancer raised (retriable, session stays pending)
  SessionTimeout     deadline elapsed with no reviewer decision
"""

from __future__ import annotations


class BrokerError(Exception):
    """Base class for all broker failures."""

    def __init__(self, message: str, session_id: str = ""):
        super().__init__(message)
        self.session_id = session_id

    def __copy__(self):
        # Subclass __init__ signatures differ from args; rebuild from state.
        clone = self.__class__.__new__(self.__class__)
        clone.args = self.args
        clone.__dict__.update(self.__dict__)
        return clone


class SessionNotFound(BrokerError):
    """Raised when a session id is unknown or its record was already reaped."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} not found", session_id)


class DuplicateId(BrokerError):
    """Raised when the store already holds a record with the same id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id!r} already exists", session_id)


class AlreadyResolved(BrokerError):
    """Raised when a terminal transition is attempted on a non-pending session."""

    def __init__(self, session_id: str, status: str = ""):
        msg = f"Session {session_id!r} already completed or timed out"
        if status:
            msg += f" (status={status})"
        super().__init__(msg, session_id)
        self.status = status


class SessionResolved(BrokerError):
    """Raised when reprocess targets a session that already left pending."""

    def __init__(self, session_id: str, status: str = ""):
        super().__init__(
            f"Session {session_id!r} is resolved; no further edits possible",
            session_id,
        )
        self.status = status


class ComputationFailed(BrokerError):
    """The enhancement computation raised. The session is left untouched."""
    pass


class SessionTimeout(BrokerError):
    """The review deadline elapsed before any reviewer decision."""

    def __init__(self, session_id: str, timeout_seconds: float):
        super().__init__(
            f"User interaction timeout ({timeout_seconds:g}s) for session {session_id!r}",
            session_id,
        )
        self.timeout_seconds = timeout_seconds
