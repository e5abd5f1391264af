"""
Review Broker: Session Record

Identity and state for one rendezvous between an automated caller and
a human reviewer. Records are created and mutated only by the broker;
the per-record lock is what makes the pending -> terminal test-and-set
atomic.

States: pending → completed | timed_out (one-shot, never reversed)
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

USE_ORIGINAL_MARKER = "__USE_ORIGINAL__"
END_CONVERSATION_MARKER = "__END_CONVERSATION__"

DEFAULT_TIMEOUT_SECONDS = 8 * 60


class SessionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class OutcomeKind(str, Enum):
    EDITED = "edited"
    ORIGINAL = "original"
    END_CONVERSATION = "end_conversation"


# Valid transitions: {from_status: [valid_to_statuses]}
VALID_TRANSITIONS = {
    SessionStatus.PENDING: [SessionStatus.COMPLETED, SessionStatus.TIMED_OUT],
    SessionStatus.COMPLETED: [],  # Terminal
    SessionStatus.TIMED_OUT: [],  # Terminal
}


def new_session_id() -> str:
    """128-bit random, hex encoded."""
    return secrets.token_hex(16)


@dataclass(frozen=True)
class ReviewOutcome:
    """The single decision a reviewer made for a session."""
    kind: OutcomeKind
    content: str

    @property
    def ends_conversation(self) -> bool:
        return self.kind is OutcomeKind.END_CONVERSATION


def resolve_submission(content: str, fallback_content: str) -> ReviewOutcome:
    """Map submitted content, including the two reserved markers, to an outcome."""
    if content == USE_ORIGINAL_MARKER:
        return ReviewOutcome(OutcomeKind.ORIGINAL, fallback_content)
    if content == END_CONVERSATION_MARKER:
        return ReviewOutcome(OutcomeKind.END_CONVERSATION, END_CONVERSATION_MARKER)
    return ReviewOutcome(OutcomeKind.EDITED, content)


@dataclass
class SessionRecord:
    session_id: str
    current_content: str
    fallback_content: str
    context_blob: str = ""
    context_refs: tuple[str, ...] = ()
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    status: SessionStatus = SessionStatus.PENDING
    created_at: float = field(default_factory=time.time)
    outcome: ReviewOutcome | None = None
    revision: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def deadline(self) -> float:
        return self.created_at + self.timeout_seconds

    @property
    def is_pending(self) -> bool:
        return self.status is SessionStatus.PENDING


@dataclass(frozen=True)
class TransitionRecord:
    """Immutable record of an applied status transition."""
    session_id: str
    from_status: SessionStatus
    to_status: SessionStatus
    actor: str
    reason: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionInfo:
    """Point-in-time view of a pending session, as shown to the reviewer."""
    session_id: str
    current_content: str
    status: SessionStatus
    created_at_ms: int
    timeout_ms: int
    revision: int = 0
