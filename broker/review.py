"""
Review Broker: Caller-side Review Flow

What an automated tool invocation runs to put a prompt in front of a
human: enhance it once, open a review session, wait for the decision,
and map the outcome to the text the tool returns.

Enhancers are external. They are async callables
    enhancer(prompt, conversation_history, context_refs) -> revised prompt
built per project by a factory named in config ("package.module:callable"):
    factory(project_root, base_url, token) -> enhancer
and cached for the life of the process.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
import threading
import webbrowser
from typing import Callable, Iterable

from broker.errors import SessionTimeout
from broker.rendezvous import Enhancer, SessionBroker
from broker.session import OutcomeKind

logger = logging.getLogger("review_broker.review")

EnhancerFactory = Callable[[str, str, str], Enhancer]

END_CONVERSATION_MESSAGE = (
    "User chose to end the conversation. Please stop and do not continue with any tasks."
)


# ═══════════════════════════════════════════════════════════════════
# Enhancer Cache
# ═══════════════════════════════════════════════════════════════════

def load_factory(path: str) -> EnhancerFactory:
    """Resolve "package.module:callable" to the factory it names."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Enhancer factory must look like 'package.module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{path!r} does not name a callable")
    return factory


class EnhancerCache:
    """Process-scoped enhancers, one per (project root, backend URL)."""

    def __init__(self, factory: EnhancerFactory, base_url: str = "", token: str = ""):
        self._factory = factory
        self.base_url = base_url
        self._token = token
        self._enhancers: dict[str, Enhancer] = {}
        self._lock = threading.Lock()

    def get(self, project_root: str) -> Enhancer:
        key = f"{project_root}:{self.base_url}"
        with self._lock:
            enhancer = self._enhancers.get(key)
            if enhancer is None:
                enhancer = self._factory(project_root, self.base_url, self._token)
                self._enhancers[key] = enhancer
                logger.info("Created enhancer for %s", project_root)
            return enhancer

    def clear(self) -> None:
        with self._lock:
            self._enhancers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._enhancers)


# ═══════════════════════════════════════════════════════════════════
# Review Flow
# ═══════════════════════════════════════════════════════════════════

def timeout_message(prompt: str, timeout_seconds: float) -> str:
    return f"Enhancement timed out ({timeout_seconds / 60:g} minutes). Using original prompt: {prompt}"


async def review_prompt(
    broker: SessionBroker,
    enhancer: Enhancer,
    prompt: str,
    conversation_history: str,
    context_refs: Iterable[str] = (),
    session_url: Callable[[str], str] | None = None,
    open_browser: bool = False,
) -> str:
    """
    Enhance a prompt, hand it to a reviewer, and return the text to use.

    Returns the reviewer's text, the original prompt (on "use original" or
    on timeout, with a notice), or END_CONVERSATION_MESSAGE.

    Raises:
        ValueError: prompt or conversation_history missing
        Exception: whatever the initial enhancement raises
    """
    if not prompt:
        raise ValueError("Missing required parameter: prompt")
    if not conversation_history:
        raise ValueError("Missing required parameter: conversation_history")

    refs = list(context_refs)
    enhanced = await enhancer(prompt, conversation_history, refs)

    session_id = broker.create(
        initial_content=enhanced,
        fallback_content=prompt,
        context_blob=conversation_history,
        context_refs=refs,
        enhancer=enhancer,
    )

    if session_url is not None:
        url = session_url(session_id)
        logger.info("Review session %s ready at %s", session_id, url)
        if open_browser:
            opened = await asyncio.to_thread(webbrowser.open, url)
            if not opened:
                logger.warning("Could not open a browser; visit %s to review", url)

    try:
        outcome = await broker.wait(session_id)
    except SessionTimeout as e:
        logger.warning("Review %s timed out, falling back to original prompt", session_id)
        return timeout_message(prompt, e.timeout_seconds)

    if outcome.kind is OutcomeKind.END_CONVERSATION:
        logger.info("Reviewer ended the conversation (session %s)", session_id)
        return END_CONVERSATION_MESSAGE
    return outcome.content
