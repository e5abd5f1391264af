"""
Review Broker: Timeout Guard

Per-session deadline timer. Armed at creation for created_at + timeout;
the deadline is never extended by reviewer activity. Firing hands the
session id to the broker's expiry path, which only wins if the session
is still pending. Disarming cancels the timer, but correctness never
depends on it: a guard that fires after a submit loses the test-and-set
and does nothing.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger("review_broker.guard")


class TimeoutGuard:

    def __init__(
        self,
        session_id: str,
        deadline: float,
        on_expire: Callable[[str], None],
    ):
        self.session_id = session_id
        self.deadline = deadline
        self._on_expire = on_expire
        self._timer: threading.Timer | None = None
        self._fired = False
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, self.deadline - time.time())

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.deadline

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None and not (self._fired or self._cancelled)

    @property
    def fired(self) -> bool:
        return self._fired

    def arm(self) -> None:
        with self._lock:
            if self._timer is not None or self._cancelled:
                return
            self._timer = threading.Timer(self.remaining_seconds, self._fire)
            self._timer.daemon = True
            self._timer.name = f"timeout-guard-{self.session_id[:8]}"
            self._timer.start()

    def disarm(self) -> None:
        """Cancel the pending timer. Safe to call repeatedly or after firing."""
        with self._lock:
            timer = self._timer
            self._cancelled = True
        if timer is not None:
            timer.cancel()

    def fire_now(self) -> None:
        """Run the expiry path immediately, on the calling thread."""
        self.disarm()
        self._fire()

    def _fire(self) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
        try:
            self._on_expire(self.session_id)
        except Exception as e:
            logger.error("Timeout guard for %s failed: %s", self.session_id, e, exc_info=True)
