"""MCP tools.

Every tool module has a ``register(mcp)`` hook; ``main.py`` owns the FastMCP
instance and hands it over here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastmcp import FastMCP


def register_tools(mcp: FastMCP) -> None:
    from fnrunner.tools import containers, run_function

    run_function.register(mcp)
    containers.register(mcp)
