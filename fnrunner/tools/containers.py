"""Inspect and clean up fnrunner containers on the engine."""

from __future__ import annotations

from fastmcp import FastMCP

from fnrunner.core.errors import FnRunnerError
from fnrunner.core.runner import runner
from fnrunner.core.types.container import ContainerInfo
from fnrunner.log import app_logger


def format_containers(containers: list[ContainerInfo]) -> str:
    if not containers:
        return "No fnrunner containers."
    lines = [f"{c.id[:12]}  {c.name}  {c.image}  {c.status}" for c in containers]
    return "\n".join(lines)


def register(mcp: FastMCP) -> None:
    """Register container management tools on the given FastMCP instance."""

    @mcp.tool()
    async def list_function_containers() -> str:
        """List all containers created by fnrunner, including stopped ones."""
        app_logger.info("[list_function_containers] Request received")
        try:
            containers = await runner.containers.list_containers()
        except FnRunnerError as exc:
            app_logger.error("[list_function_containers] Listing failed | error=%s", exc)
            return f"[error] {exc}"
        app_logger.info("[list_function_containers] Listing completed | count=%d", len(containers))
        return format_containers(containers)

    @mcp.tool()
    async def kill_function_container(container_id: str) -> str:
        """Kill a running fnrunner container. The container is not removed."""
        app_logger.info("[kill_function_container] Request received | container_id=%s", container_id)
        try:
            await runner.containers.kill(container_id)
        except FnRunnerError as exc:
            app_logger.error("[kill_function_container] Kill failed | container_id=%s | error=%s", container_id, exc)
            return f"[error] {exc}"
        return f"Killed {container_id}"

    @mcp.tool()
    async def remove_function_container(container_id: str) -> str:
        """Force-remove a fnrunner container."""
        app_logger.info("[remove_function_container] Request received | container_id=%s", container_id)
        try:
            await runner.containers.remove(container_id)
        except FnRunnerError as exc:
            app_logger.error(
                "[remove_function_container] Remove failed | container_id=%s | error=%s", container_id, exc
            )
            return f"[error] {exc}"
        return f"Removed {container_id}"
