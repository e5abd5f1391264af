"""
Prompt Review MCP Server

Exposes `enhance_prompt` as an MCP tool. The tool enhances the agent's
prompt with the configured enhancer, opens a local review page, and
blocks until the human sends an edited prompt, picks the original, ends
the conversation, or lets the review time out (original prompt is used).

One broker and one review server live for the whole process; the review
server starts on first use inside the MCP event loop.

Transports:
    stdio:  python mcp_servers/review_server.py
    http:   python mcp_servers/review_server.py --http --port 8200

Config: review_config.yaml (+ config/{RB_ENV}.yaml, RB_* overrides).
The enhancer factory is required:
    enhancer:
      factory: "my_package.enhancers:build"
"""

import asyncio
import os
import sys

from mcp.server.fastmcp import FastMCP

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _base not in sys.path:
    sys.path.insert(0, _base)

from broker.config import BrokerSettings, load_config
from broker.logging import configure_logging, get_logger
from broker.rendezvous import SessionBroker
from broker.review import EnhancerCache, load_factory, review_prompt
from api.server import ReviewServer

logger = get_logger("mcp")

mcp = FastMCP(
    name="prompt-review",
    instructions=(
        "Prompt enhancement with human review. Call enhance_prompt with the "
        "user's instruction and the conversation so far; the returned text is "
        "the prompt to act on. If it says the user ended the conversation, stop."
    ),
)


# ─── PROCESS STATE ────────────────────────────────────────────────────

SETTINGS = BrokerSettings.from_config(load_config())

BROKER = SessionBroker(
    timeout_seconds=SETTINGS.timeout_seconds,
    result_retention_seconds=SETTINGS.result_retention_seconds,
    history_limit=SETTINGS.history_limit,
)

SERVER = ReviewServer(
    BROKER,
    host=SETTINGS.host,
    port=SETTINGS.port,
    port_attempts=SETTINGS.port_attempts,
)

_enhancers: EnhancerCache | None = None
_start_lock = asyncio.Lock()


def get_enhancers() -> EnhancerCache:
    global _enhancers
    if _enhancers is None:
        if not SETTINGS.enhancer_factory:
            raise RuntimeError("No enhancer configured: set enhancer.factory in review_config.yaml")
        _enhancers = EnhancerCache(
            load_factory(SETTINGS.enhancer_factory),
            base_url=SETTINGS.enhancer_base_url,
            token=SETTINGS.enhancer_token,
        )
    return _enhancers


async def ensure_server() -> ReviewServer:
    async with _start_lock:
        await SERVER.start()
    return SERVER


# ─── TOOLS ────────────────────────────────────────────────────────────

@mcp.tool()
async def enhance_prompt(
    prompt: str,
    conversation_history: str,
    project_root_path: str = "",
) -> str:
    """
    Enhance an instruction and let the user review it before it is used.

    Opens a browser page with the enhanced prompt. The user can edit it,
    ask for another enhancement pass, keep the original, or end the
    conversation. Waits up to the configured review timeout (8 minutes
    by default), then falls back to the original prompt.

    Args:
        prompt: The instruction to enhance
        conversation_history: Recent conversation, used as context
        project_root_path: Project directory (default: server working directory)
    """
    project_root = os.path.abspath(project_root_path) if project_root_path else os.getcwd()
    logger.info("Enhancing prompt for %s", project_root)

    enhancer = get_enhancers().get(project_root)
    server = await ensure_server()
    return await review_prompt(
        BROKER,
        enhancer,
        prompt,
        conversation_history,
        session_url=server.session_url,
        open_browser=SETTINGS.open_browser,
    )


# ─── ENTRYPOINT ───────────────────────────────────────────────────────

if __name__ == "__main__":
    configure_logging(level=SETTINGS.log_level)
    if "--http" in sys.argv:
        port = 8200
        for i, arg in enumerate(sys.argv):
            if arg == "--port" and i + 1 < len(sys.argv):
                port = int(sys.argv[i + 1])
        mcp.settings.port = port
        mcp.run(transport="streamable-http")
    else:
        mcp.run(transport="stdio")
