"""fnrunner: MCP server that runs functions in ephemeral containers.

Exposes tools for running a function image once (build or pull, create,
run, remove) and for inspecting and cleaning up fnrunner containers.

The MCP server runs in stateless-HTTP mode.  The engine connection is
opened by the app lifespan so it is shared across requests.
"""

from __future__ import annotations

import contextlib
import logging
from contextlib import AsyncExitStack

import uvicorn
from fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.routing import Mount

from fnrunner.config import settings
from fnrunner.core.engine import engine  # module-level singleton
from fnrunner.tools import register_tools

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def app_lifespan(_app: Starlette):
    """Connect to the engine and enter the mounted MCP app lifespan."""
    logger.info("Connecting to container engine | docker_host=%s", settings.docker_host or "local")
    await engine.start()
    async with AsyncExitStack() as stack:
        await stack.enter_async_context(mcp_app.router.lifespan_context(mcp_app))
        logger.info("MCP server ready at http://%s:%d/mcp", settings.mcp_host, settings.mcp_port)
        yield
    logger.info("Closing engine connection")
    await engine.shutdown()


mcp = FastMCP(
    "fnrunner",
    instructions=(
        "This MCP server runs functions packaged as container images. "
        "Use run_function to build (or pull) an image and run it once in a fresh "
        "container, passing input on stdin and getting stdout, stderr and the exit "
        "status back. Use list_function_containers, kill_function_container and "
        "remove_function_container to manage containers left on the engine."
    ),
)

register_tools(mcp)

mcp_app = mcp.http_app(
    path="/",
    transport="streamable-http",
    stateless_http=True,
    json_response=True,
)

app = Starlette(
    routes=[Mount("/mcp", app=mcp_app)],
    lifespan=app_lifespan,
)


def main() -> None:
    uvicorn.run("fnrunner.main:app", host=settings.mcp_host, port=settings.mcp_port)


if __name__ == "__main__":
    main()
