"""
Review Broker: Review Gateway

FastAPI application mapping the review page's HTTP calls onto broker
operations:
  GET  /enhance                 review page
  GET  /api/session?session=ID  current content + countdown metadata
  POST /api/submit              reviewer decision (text or reserved marker)
  POST /api/re-enhance          recompute content from the reviewer's edit
  GET  /health                  liveness + broker stats

ReviewServer runs the app on an embedded uvicorn server inside the
caller's event loop, so the review page and the waiting tool call share
one process and one broker.

Usage:
    server = ReviewServer(broker, port=3000)
    await server.start()
    print(server.session_url(session_id))
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import socket
import time
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from api.models import ReprocessRequest, SessionInfoResponse, SubmitRequest
from api.templates import REVIEW_UI_HTML
from broker.errors import AlreadyResolved, ComputationFailed, SessionNotFound, SessionResolved
from broker.rendezvous import SessionBroker

logger = logging.getLogger("review_broker.api")

NOT_FOUND = "Session not found"
ALREADY_RESOLVED = "Session already completed or timed out"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _read_body(request: Request) -> dict[str, Any] | None:
    """Parse a JSON object body. Returns None when the body is not one."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_app(broker: SessionBroker) -> FastAPI:
    """
    Create the gateway app bound to one broker.

    Separated from ReviewServer so tests can drive it with TestClient.
    """
    app = FastAPI(
        title="Review Broker",
        version="0.1.0",
        description="Human review rendezvous for automated tool calls",
    )
    app.state.broker = broker

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # ── Review Page ───────────────────────────────────────────

    @app.get("/enhance")
    async def review_page():
        return HTMLResponse(content=REVIEW_UI_HTML)

    # ── Session Info ──────────────────────────────────────────

    @app.get("/api/session")
    async def session_info(session: str = ""):
        if not session:
            return _error(400, "Session ID is required")
        try:
            info = broker.info(session)
        except SessionNotFound:
            return _error(404, NOT_FOUND)
        return JSONResponse(content=SessionInfoResponse.from_info(info).to_dict())

    # ── Submit ────────────────────────────────────────────────

    @app.post("/api/submit")
    async def submit(request: Request):
        body = await _read_body(request)
        if body is None:
            return _error(400, "Invalid request body")

        req = SubmitRequest.from_body(body)
        errors = req.validate()
        if errors:
            return _error(400, errors[0])

        try:
            outcome = broker.submit(req.session_id, req.content)
        except SessionNotFound:
            return _error(404, NOT_FOUND)
        except AlreadyResolved:
            return _error(400, ALREADY_RESOLVED)

        logger.info("Session %s completed via gateway (%s)", req.session_id, outcome.kind.value)
        return JSONResponse(content={"success": True})

    # ── Re-enhance ────────────────────────────────────────────

    @app.post("/api/re-enhance")
    async def reprocess(request: Request):
        body = await _read_body(request)
        if body is None:
            return _error(400, "Invalid request body")

        req = ReprocessRequest.from_body(body)
        errors = req.validate()
        if errors:
            return _error(400, errors[0])

        try:
            content = await broker.reprocess(req.session_id, req.current_prompt)
        except SessionNotFound:
            return _error(404, NOT_FOUND)
        except SessionResolved:
            return _error(400, ALREADY_RESOLVED)
        except ComputationFailed as e:
            logger.error("Re-enhance failed for %s: %s", req.session_id, e)
            return _error(500, f"Enhancement failed: {e}")

        return JSONResponse(content={"currentContent": content})

    # ── Health ────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return JSONResponse(content={
            "status": "ok",
            "timestamp": time.time(),
            "sessions": broker.stats(),
        })

    return app


# ═══════════════════════════════════════════════════════════════════
# Embedded Server
# ═══════════════════════════════════════════════════════════════════

class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves the host process's signal handling alone."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def bind_first_free_port(host: str, port: int, attempts: int) -> socket.socket:
    """
    Bind a listening-ready socket on the first free port in
    [port, port + attempts). Port 0 lets the OS pick.
    """
    for candidate in range(port, port + max(1, attempts)):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, candidate))
        except OSError as e:
            sock.close()
            if e.errno != errno.EADDRINUSE or candidate == 0:
                raise
            logger.warning("Port %d in use, trying %d", candidate, candidate + 1)
            continue
        return sock
    raise OSError(errno.EADDRINUSE, f"No free port in range {port}-{port + attempts - 1}")


class ReviewServer:
    """Runs the gateway for one broker on a free local port."""

    def __init__(
        self,
        broker: SessionBroker,
        host: str = "127.0.0.1",
        port: int = 3000,
        port_attempts: int = 20,
    ):
        self.broker = broker
        self.host = host
        self.port = port
        self.port_attempts = port_attempts
        self.app = create_app(broker)
        self._server: _EmbeddedServer | None = None
        self._task: asyncio.Task | None = None
        self._socket: socket.socket | None = None

    @property
    def running(self) -> bool:
        return self._server is not None and self._server.started

    async def start(self, startup_timeout: float = 10.0) -> None:
        if self._server is not None:
            return

        self._socket = bind_first_free_port(self.host, self.port, self.port_attempts)
        self.port = self._socket.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self._server = _EmbeddedServer(config)
        try:
            self._task = asyncio.create_task(self._server.serve(sockets=[self._socket]))
            deadline = time.monotonic() + startup_timeout
            while not self._server.started:
                if self._task.done():
                    self._task.result()
                    raise RuntimeError("Review server exited during startup")
                if time.monotonic() > deadline:
                    raise RuntimeError(f"Review server did not start within {startup_timeout}s")
                await asyncio.sleep(0.05)
        except BaseException:
            logger.error("Review server failed to start on port %d", self.port, exc_info=True)
            self._discard()
            raise

        logger.info("Review server listening on http://%s:%d", self.host, self.port)

    def _discard(self) -> None:
        """Drop a half-started server so the next start() binds afresh."""
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._socket is not None:
            self._socket.close()
        self._server = None
        self._task = None
        self._socket = None

    def session_url(self, session_id: str) -> str:
        host = "localhost" if self.host in ("127.0.0.1", "0.0.0.0") else self.host
        return f"http://{host}:{self.port}/enhance?session={session_id}"

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        if self._task is not None:
            await self._task
        if self._socket is not None:
            self._socket.close()
        self._server = None
        self._task = None
        self._socket = None
        logger.info("Review server stopped")
