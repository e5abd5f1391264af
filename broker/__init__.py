"""
Review Broker - Core Package

Rendezvous between an automated caller and a human reviewer:
  - broker.session: SessionRecord, SessionStatus, ReviewOutcome, sentinels
  - broker.store: SessionStore
  - broker.channel: CompletionChannel
  - broker.guard: TimeoutGuard
  - broker.rendezvous: SessionBroker
  - broker.errors: error taxonomy
"""

from broker.errors import (
    BrokerError, SessionNotFound, DuplicateId, AlreadyResolved,
    SessionResolved, ComputationFailed, SessionTimeout,
)
from broker.session import (
    SessionRecord, SessionStatus, SessionInfo, ReviewOutcome, OutcomeKind,
    TransitionRecord, USE_ORIGINAL_MARKER, END_CONVERSATION_MARKER,
)
from broker.store import SessionStore
from broker.channel import CompletionChannel
from broker.guard import TimeoutGuard
from broker.rendezvous import SessionBroker
