"""Run a function in an ephemeral container."""

from __future__ import annotations

from fastmcp import FastMCP

from fnrunner.config import settings
from fnrunner.core.errors import FnRunnerError
from fnrunner.core.runner import runner
from fnrunner.core.types.container import ContainerSpec, ExecutionResult, ImageSpec, RegistryAuth
from fnrunner.log import app_logger


def _truncate(text: str, limit: int) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return text[:limit] + "\n... [output truncated]", True


def format_result(result: ExecutionResult, max_output_size: int | None = None) -> str:
    """Render an ExecutionResult the way tool callers read it."""
    limit = settings.max_output_size if max_output_size is None else max_output_size
    stdout, stdout_truncated = _truncate(result.stdout_text, limit)
    stderr, stderr_truncated = _truncate(result.stderr_text, limit)

    parts: list[str] = []
    if stdout:
        parts.append(f"[stdout]\n{stdout}")
    if stderr:
        parts.append(f"[stderr]\n{stderr}")
    parts.append(f"[status] {result.status.value}")
    if result.exit_code is not None:
        parts.append(f"[exit_code] {result.exit_code}")
    if result.error is not None:
        parts.append(f"[error] {result.error}")
    if stdout_truncated or stderr_truncated:
        parts.append("[note] Output was truncated due to size limits.")
    return "\n".join(parts)


def register(mcp: FastMCP) -> None:
    """Register the run_function tool on the given FastMCP instance."""

    @mcp.tool()
    async def run_function(
        image_name: str,
        input: str = "",
        command: list[str] | None = None,
        env: list[str] | None = None,
        context_dir: str = "",
        remote_uri: str = "",
        dockerfile: str = "Dockerfile",
        use_prefix: bool = True,
        force_pull: bool = False,
        registry_username: str = "",
        registry_password: str = "",
        registry_server: str = "",
    ) -> str:
        """Build (or pull) an image and run it once in a fresh container.

        The image is built from ``context_dir`` or ``remote_uri``; when no
        Dockerfile is found there it is pulled from the registry instead.
        ``input`` is written to the container's stdin.

        Args:
            image_name: Image name; prefixed with "fnrunner/" unless use_prefix is false.
            input: Data for the container's stdin.
            command: Command vector overriding the image's default.
            env: Environment entries in KEY=VALUE form.
            context_dir: Build context directory.
            remote_uri: Remote build context (git or tarball URL).
            dockerfile: Dockerfile path inside the context.
            use_prefix: Namespace the image under "fnrunner/".
            force_pull: Skip the build and pull the image.
            registry_username: Registry user for authenticated pulls/builds.
            registry_password: Registry password.
            registry_server: Registry address (defaults to Docker Hub).

        Returns:
            Formatted string with stdout, stderr, status and exit code.
        """
        app_logger.info(
            "[run_function] Received request | image_name=%s | input_length=%d | command=%r",
            image_name,
            len(input),
            command,
        )
        auth = None
        if registry_username or registry_password:
            auth = RegistryAuth(
                username=registry_username,
                password=registry_password,
                server_address=registry_server,
            )
        image_spec = ImageSpec(
            image_name=image_name,
            context_dir=context_dir,
            remote_uri=remote_uri,
            dockerfile=dockerfile,
            use_prefix=use_prefix,
            auth=auth,
            force_pull=force_pull,
        )
        container_spec = ContainerSpec(
            image=image_spec.resolved_name,
            command=command or [],
            env=env or [],
        )
        try:
            result = await runner.run_function(
                image_spec,
                container_spec,
                input_data=input,
                timeout=settings.exec_timeout or None,
                remove=settings.remove_after_run,
            )
        except FnRunnerError as exc:
            app_logger.error("[run_function] Execution failed | image_name=%s | error=%s", image_name, exc)
            return f"[error] {exc}"

        app_logger.info(
            "[run_function] Execution finished | image_name=%s | status=%s | exit_code=%s",
            image_name,
            result.status.value,
            result.exit_code,
        )
        response = format_result(result)
        app_logger.info("[run_function] Returning response | response_length=%d", len(response))
        return response
