"""Main FastMCP server — mounts the storyboard sub-server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from . import tracing
from .client import GeminiClient
from .tools.storyboard import close_controller, storyboard_server

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(server: FastMCP):
    """Startup/shutdown hook — tracing, session resources, shared Gemini clients."""
    tracing.setup()
    yield {}
    await close_controller()
    closed = await GeminiClient.close_all()
    tracing.shutdown()
    logger.info("Lifespan shutdown: closed %d client(s)", closed)


app = FastMCP(
    "video-storyboard",
    instructions=(
        "Turn a short video into a storyboard: title, summary, style and 7-8 second "
        "scenes with setting, characters, action, camera, dialogue, voice and sound, "
        "plus one thumbnail per scene. Modes: original, creative, remix."
    ),
    lifespan=_lifespan,
)

app.mount(storyboard_server)


def main() -> None:
    """Entry-point for ``video-storyboard-mcp`` console script."""
    app.run()


if __name__ == "__main__":
    main()
