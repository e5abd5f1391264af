"""
Review Broker: Session Broker

Correlates an automated caller waiting on a result with a human reviewer
acting through a browser. One session per rendezvous:

    session_id = broker.create(draft, original, history, refs)
    outcome = await broker.wait(session_id)        # caller side
    broker.submit(session_id, edited_text)         # reviewer side
    await broker.reprocess(session_id, new_draft)  # reviewer side, 0..n times

Exactly one of {submit, timeout guard} moves a session out of pending.
The move is a test-and-set on the record's status under the record lock;
the loser observes AlreadyResolved (submit) or does nothing (guard).
No lock is ever held across an await.

A resolved session's record leaves the store immediately. Its completion
channel is retained for a short window so a waiter arriving after the
resolution still observes it, then reaped.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Awaitable, Callable, Iterable

from broker.channel import CompletionChannel
from broker.errors import (
    AlreadyResolved,
    BrokerError,
    ComputationFailed,
    SessionNotFound,
    SessionResolved,
    SessionTimeout,
)
from broker.guard import TimeoutGuard
from broker.logging import SessionEventLogger
from broker.session import (
    DEFAULT_TIMEOUT_SECONDS,
    VALID_TRANSITIONS,
    ReviewOutcome,
    SessionInfo,
    SessionRecord,
    SessionStatus,
    TransitionRecord,
    new_session_id,
    resolve_submission,
)
from broker.store import SessionStore

logger = logging.getLogger("review_broker.broker")

# (edited_prompt, context_blob, context_refs) -> revised prompt
Enhancer = Callable[[str, str, list], Awaitable[str]]


class SessionBroker:
    """
    Owns every session record for its whole life.

    Args:
        enhancer: async callable used by reprocess; may be set later
        timeout_seconds: default review deadline, fixed per session at creation
        result_retention_seconds: how long a resolved channel stays awaitable
        history_limit: max transition records kept for inspection
    """

    def __init__(
        self,
        enhancer: Enhancer | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        result_retention_seconds: float = 60.0,
        history_limit: int = 1000,
        store: SessionStore | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.result_retention_seconds = result_retention_seconds
        self._enhancer = enhancer
        self._store = store or SessionStore()
        self._channels: dict[str, CompletionChannel] = {}
        self._guards: dict[str, TimeoutGuard] = {}
        self._session_enhancers: dict[str, Enhancer] = {}
        self._history: deque[TransitionRecord] = deque(maxlen=history_limit)
        self._lock = threading.Lock()
        self._events = SessionEventLogger()

    @property
    def store(self) -> SessionStore:
        return self._store

    def set_enhancer(self, enhancer: Enhancer | None) -> None:
        self._enhancer = enhancer

    # ─── Create / Wait ───────────────────────────────────────────

    def create(
        self,
        initial_content: str,
        fallback_content: str,
        context_blob: str = "",
        context_refs: Iterable[str] = (),
        timeout_seconds: float | None = None,
        enhancer: Enhancer | None = None,
    ) -> str:
        """
        Allocate a pending session, arm its timeout guard, and return its id.

        `enhancer` overrides the broker-wide enhancer for this session's
        reprocess calls (one broker can serve several projects).
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        record = SessionRecord(
            session_id=new_session_id(),
            current_content=initial_content,
            fallback_content=fallback_content,
            context_blob=context_blob,
            context_refs=tuple(context_refs),
            timeout_seconds=timeout,
        )
        channel = CompletionChannel(record.session_id)
        guard = TimeoutGuard(record.session_id, record.deadline, self._expire)

        with self._lock:
            self._reap_channels()
            self._store.put(record)
            self._channels[record.session_id] = channel
            self._guards[record.session_id] = guard
            if enhancer is not None:
                self._session_enhancers[record.session_id] = enhancer

        self._events.created(record.session_id, timeout, len(initial_content))
        guard.arm()
        return record.session_id

    async def wait(self, session_id: str) -> ReviewOutcome:
        """
        Suspend until the session resolves.

        Raises:
            SessionNotFound: id never existed or its result was reaped
            SessionTimeout: the deadline elapsed first
        """
        return await self._channel(session_id).wait()

    def wait_blocking(self, session_id: str, timeout: float | None = None) -> ReviewOutcome:
        """Thread-blocking variant of wait() for synchronous callers."""
        return self._channel(session_id).wait_blocking(timeout)

    def _channel(self, session_id: str) -> CompletionChannel:
        with self._lock:
            self._reap_channels()
            channel = self._channels.get(session_id)
        if channel is None:
            raise SessionNotFound(session_id)
        return channel

    # ─── Reviewer Operations ─────────────────────────────────────

    def submit(self, session_id: str, content: str, actor: str = "reviewer") -> ReviewOutcome:
        """
        Complete a pending session with the reviewer's content.

        The reserved markers map to the original content or to the
        end-conversation outcome. Only the first terminal transition wins.

        Raises:
            SessionNotFound: unknown or already reaped id
            AlreadyResolved: another transition won the race
        """
        try:
            record = self._store.get(session_id)
        except SessionNotFound:
            self._events.rejected(session_id, "submit", "session not found")
            raise

        outcome = resolve_submission(content, record.fallback_content)
        try:
            self._transition(record, SessionStatus.COMPLETED, actor,
                             reason=f"outcome={outcome.kind.value}", outcome=outcome)
        except AlreadyResolved as e:
            self._events.rejected(session_id, "submit", str(e))
            raise

        self._finish(session_id)
        self._settle(session_id, outcome=outcome)
        return outcome

    async def reprocess(self, session_id: str, edited_content: str) -> str:
        """
        Recompute the session's content from the reviewer's edit.

        The enhancer runs without any lock held. Its result is written back
        only if the session is still pending at that moment; a submit or
        timeout that landed meanwhile wins and the result is discarded.

        Raises:
            SessionNotFound: unknown or already reaped id
            SessionResolved: session left pending before or during the call
            ComputationFailed: enhancer missing or raised
        """
        record = self._store.get(session_id)
        if not record.is_pending:
            raise SessionResolved(session_id, record.status.value)
        with self._lock:
            enhancer = self._session_enhancers.get(session_id, self._enhancer)
        if enhancer is None:
            raise ComputationFailed("Enhance callback not configured", session_id)

        self._events.reprocess_started(session_id, len(edited_content))
        started = time.time()
        try:
            new_content = await enhancer(
                edited_content, record.context_blob, list(record.context_refs),
            )
        except Exception as e:
            self._events.reprocess_failed(session_id, str(e))
            raise ComputationFailed(str(e), session_id) from e

        with record.lock:
            resolved = record.status is not SessionStatus.PENDING
            if not resolved:
                record.current_content = new_content
                record.revision += 1
            status, revision = record.status.value, record.revision
        if resolved:
            self._events.rejected(session_id, "reprocess", f"resolved during computation ({status})")
            raise SessionResolved(session_id, status)

        self._events.reprocess_finished(session_id, revision, (time.time() - started) * 1000)
        return new_content

    def info(self, session_id: str) -> SessionInfo:
        """Snapshot of a pending session for the review page."""
        record = self._store.get(session_id)
        with record.lock:
            return SessionInfo(
                session_id=record.session_id,
                current_content=record.current_content,
                status=record.status,
                created_at_ms=int(record.created_at * 1000),
                timeout_ms=int(record.timeout_seconds * 1000),
                revision=record.revision,
            )

    # ─── Transitions ─────────────────────────────────────────────

    def _transition(
        self,
        record: SessionRecord,
        to_status: SessionStatus,
        actor: str,
        reason: str = "",
        outcome: ReviewOutcome | None = None,
    ) -> TransitionRecord:
        """Test-and-set on the record's status. Raises AlreadyResolved for the loser."""
        with record.lock:
            current = record.status
            if to_status not in VALID_TRANSITIONS.get(current, []):
                raise AlreadyResolved(record.session_id, current.value)
            record.status = to_status
            if to_status is SessionStatus.COMPLETED:
                record.outcome = outcome

        entry = TransitionRecord(
            session_id=record.session_id,
            from_status=current,
            to_status=to_status,
            actor=actor,
            reason=reason,
        )
        with self._lock:
            self._history.append(entry)
        self._events.transition(record.session_id, current.value, to_status.value, actor)
        return entry

    def _expire(self, session_id: str) -> None:
        """Timeout guard callback. A no-op if the session already left pending."""
        try:
            record = self._store.get(session_id)
        except SessionNotFound:
            return
        try:
            self._transition(record, SessionStatus.TIMED_OUT, "timeout_guard",
                             reason=f"no decision within {record.timeout_seconds:g}s")
        except AlreadyResolved:
            return

        self._finish(session_id)
        self._settle(session_id, error=SessionTimeout(session_id, record.timeout_seconds))

    def _finish(self, session_id: str) -> None:
        """Drop a terminal record from the store and release its guard."""
        self._store.remove(session_id)
        with self._lock:
            guard = self._guards.pop(session_id, None)
            self._session_enhancers.pop(session_id, None)
        if guard is not None:
            guard.disarm()

    def _settle(
        self,
        session_id: str,
        outcome: ReviewOutcome | None = None,
        error: BrokerError | None = None,
    ) -> None:
        with self._lock:
            channel = self._channels.get(session_id)
        if channel is None:
            logger.warning("No completion channel for resolved session %s", session_id)
            return
        if error is not None:
            channel.fail(error)
        else:
            channel.resolve(outcome)

    def _reap_channels(self) -> None:
        """Drop resolved channels past retention. Caller holds self._lock."""
        cutoff = time.time() - self.result_retention_seconds
        stale = [
            sid for sid, ch in self._channels.items()
            if ch.done and ch.resolved_at <= cutoff
        ]
        for sid in stale:
            del self._channels[sid]

    # ─── Inspection / Lifecycle ──────────────────────────────────

    def transitions(self, session_id: str | None = None) -> list[TransitionRecord]:
        with self._lock:
            if session_id is None:
                return list(self._history)
            return [t for t in self._history if t.session_id == session_id]

    def guard_for(self, session_id: str) -> TimeoutGuard | None:
        with self._lock:
            return self._guards.get(session_id)

    def stats(self) -> dict[str, Any]:
        """Statistics for monitoring."""
        with self._lock:
            self._reap_channels()
            retained = sum(1 for ch in self._channels.values() if ch.done)
            counts: dict[str, int] = {}
            for t in self._history:
                counts[t.to_status.value] = counts.get(t.to_status.value, 0) + 1
            armed = len(self._guards)
        return {
            "pending": len(self._store),
            "armed_guards": armed,
            "retained_results": retained,
            "transitions": counts,
        }

    def close(self) -> None:
        """Time out every pending session now, waking all waiters."""
        with self._lock:
            guards = list(self._guards.values())
        for guard in guards:
            guard.fire_now()
        if guards:
            logger.info("Broker closed: expired %d pending session(s)", len(guards))
