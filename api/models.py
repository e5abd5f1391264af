"""
Review Broker: API Models

Request/response dataclasses for the review gateway. Field names on the
wire are camelCase to match the review page.
No FastAPI dependency; used by server and tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from broker.session import SessionInfo


@dataclass
class SubmitRequest:
    """POST /api/submit request body."""
    session_id: str
    content: str

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> SubmitRequest:
        return cls(
            session_id=body.get("sessionId", ""),
            content=body.get("content", ""),
        )

    def validate(self) -> list[str]:
        """Return list of validation errors (empty = valid)."""
        errors = []
        if not self.session_id or not isinstance(self.session_id, str):
            errors.append("Session ID is required")
        if not isinstance(self.content, str):
            errors.append("content must be a string")
        return errors


@dataclass
class ReprocessRequest:
    """POST /api/re-enhance request body."""
    session_id: str
    current_prompt: str

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> ReprocessRequest:
        return cls(
            session_id=body.get("sessionId", ""),
            current_prompt=body.get("currentPrompt", ""),
        )

    def validate(self) -> list[str]:
        errors = []
        if not self.session_id or not isinstance(self.session_id, str):
            errors.append("Session ID is required")
        if not self.current_prompt or not isinstance(self.current_prompt, str):
            errors.append("currentPrompt is required and must be a string")
        return errors


@dataclass
class SessionInfoResponse:
    """GET /api/session response."""
    current_content: str
    status: str
    created_at: int
    timeout_ms: int

    @classmethod
    def from_info(cls, info: SessionInfo) -> SessionInfoResponse:
        return cls(
            current_content=info.current_content,
            status=info.status.value,
            created_at=info.created_at_ms,
            timeout_ms=info.timeout_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentContent": self.current_content,
            "status": self.status,
            "createdAt": self.created_at,
            "timeoutMs": self.timeout_ms,
        }
