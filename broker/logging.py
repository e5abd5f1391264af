"""
Review Broker: Structured Logging

JSON line logging for the broker and gateway, namespaced under
"review_broker". Session lifecycle events carry the session id as the
correlation field so one rendezvous can be followed end to end.

Usage:
    from broker.logging import configure_logging, SessionEventLogger

    configure_logging(level="INFO")
    events = SessionEventLogger()
    events.emit("session_created", session_id, timeout_seconds=480)

When running under an MCP stdio transport, logs must go to stderr
(stdout carries the protocol), which is the default stream here.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "review_broker"


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """Formats log records as single JSON lines."""

    def __init__(self, service_name: str = ROOT_LOGGER):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("RB_VERSION", "0.1.0")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

        # Merge structured fields attached by SessionEventLogger
        if hasattr(record, "structured"):
            entry.update(record.structured)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(record.exc_info[1])

        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: Any = None,
    service_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Configure the review_broker logger with JSON output.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        stream: Output stream (default: sys.stderr)
        service_name: Service name in log entries

    Returns:
        The configured review_broker logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers on reconfigure
    logger.handlers.clear()
    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith(ROOT_LOGGER + "."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the review_broker namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


# ═══════════════════════════════════════════════════════════════════
# Session Events
# ═══════════════════════════════════════════════════════════════════

class SessionEventLogger:
    """Emits one structured entry per session lifecycle event."""

    def __init__(self, name: str = "events"):
        self._logger = get_logger(name)

    def emit(self, action: str, session_id: str, level: int = logging.INFO, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="", lno=0,
            msg="%s session=%s",
            args=(action, session_id),
            exc_info=None,
        )
        record.structured = {"action": action, "session_id": session_id, **fields}
        self._logger.handle(record)

    def created(self, session_id: str, timeout_seconds: float, content_chars: int) -> None:
        self.emit(
            "session_created", session_id,
            timeout_seconds=timeout_seconds,
            content_chars=content_chars,
        )

    def transition(self, session_id: str, from_status: str, to_status: str, actor: str) -> None:
        self.emit(
            "session_transition", session_id,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
        )

    def rejected(self, session_id: str, operation: str, reason: str) -> None:
        self.emit(
            "operation_rejected", session_id, level=logging.WARNING,
            operation=operation,
            reason=reason[:500],
        )

    def reprocess_started(self, session_id: str, prompt_chars: int) -> None:
        self.emit("reprocess_started", session_id, prompt_chars=prompt_chars)

    def reprocess_finished(self, session_id: str, revision: int, latency_ms: float) -> None:
        self.emit(
            "reprocess_finished", session_id,
            revision=revision,
            latency_ms=round(latency_ms, 1),
        )

    def reprocess_failed(self, session_id: str, error: str) -> None:
        self.emit("reprocess_failed", session_id, level=logging.WARNING, error=error[:500])
