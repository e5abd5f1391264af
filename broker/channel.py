"""
Review Broker: Completion Channel

One-shot broadcast signal carrying a session's single resolution to
every waiter. Settled exactly once, by either a reviewer decision
(resolve) or the timeout guard (fail). Waiters may be coroutines on
any event loop or plain threads:

    outcome = await channel.wait()          # asyncio caller
    outcome = channel.wait_blocking(5.0)    # worker thread

Wakeups for coroutine waiters are marshalled onto the waiter's own loop
with call_soon_threadsafe, so resolve() is safe from timer threads.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
import time

from broker.session import ReviewOutcome

logger = logging.getLogger("review_broker.channel")


class CompletionChannel:

    def __init__(self, session_id: str = ""):
        self.session_id = session_id
        self.resolved_at = 0.0
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._outcome: ReviewOutcome | None = None
        self._error: BaseException | None = None
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def waiter_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    def resolve(self, outcome: ReviewOutcome) -> bool:
        """Settle with a reviewer outcome. Returns False if already settled."""
        return self._settle(outcome, None)

    def fail(self, error: BaseException) -> bool:
        """Settle with an error every waiter will raise. Returns False if already settled."""
        return self._settle(None, error)

    def _settle(self, outcome: ReviewOutcome | None, error: BaseException | None) -> bool:
        with self._lock:
            if self._done.is_set():
                return False
            self._outcome = outcome
            self._error = error
            self.resolved_at = time.time()
            self._done.set()
            waiters, self._waiters = self._waiters, []

        for loop, future in waiters:
            try:
                loop.call_soon_threadsafe(_wake, future)
            except RuntimeError:
                # Waiter's loop already closed; nobody is left to wake.
                logger.debug("Dropped wakeup for session %s: loop closed", self.session_id)
        return True

    def result(self) -> ReviewOutcome:
        """Return the outcome of a settled channel, or raise a fresh copy of its error."""
        if not self._done.is_set():
            raise RuntimeError(f"Channel for session {self.session_id!r} is not settled")
        if self._error is not None:
            raise copy.copy(self._error)
        return self._outcome

    async def wait(self) -> ReviewOutcome:
        loop = asyncio.get_running_loop()
        future = None
        with self._lock:
            if not self._done.is_set():
                future = loop.create_future()
                self._waiters.append((loop, future))

        if future is not None:
            try:
                await future
            finally:
                with self._lock:
                    if (loop, future) in self._waiters:
                        self._waiters.remove((loop, future))
        return self.result()

    def wait_blocking(self, timeout: float | None = None) -> ReviewOutcome:
        """Block the current thread until settled. Raises TimeoutError if `timeout` elapses first."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"Channel for session {self.session_id!r} not settled after {timeout}s")
        return self.result()


def _wake(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)
