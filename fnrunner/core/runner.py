"""Resolve an image, run a function container against it, clean up."""

from __future__ import annotations

import asyncio
import dataclasses
import io
import logging

from fnrunner.config import settings
from fnrunner.core.containers import ContainerManager
from fnrunner.core.engine import EngineConnection, engine as default_engine
from fnrunner.core.errors import ExecutionFailure, FnRunnerError
from fnrunner.core.execution import ExecutionEngine
from fnrunner.core.images import ImageResolver
from fnrunner.core.types.container import (
    ContainerSpec,
    ExecutionResult,
    ExitStatus,
    ImageSpec,
)

logger = logging.getLogger(__name__)


class FunctionRunner:
    """Caller-side composition of the image resolver, lifecycle manager and executor.

    The core never enforces deadlines or garbage-collects containers; this
    class does both on behalf of its callers when asked to.
    """

    def __init__(self, engine: EngineConnection = default_engine) -> None:
        self.images = ImageResolver(engine)
        self.containers = ContainerManager(engine)
        self.executor = ExecutionEngine(engine)

    async def run_function(
        self,
        image_spec: ImageSpec,
        container_spec: ContainerSpec | None = None,
        input_data: bytes | str = b"",
        timeout: float | None = None,
        remove: bool = True,
    ) -> ExecutionResult:
        """Run one function invocation in a fresh container.

        Args:
            image_spec: Image to build or pull.
            container_spec: Command, env, volumes and runtime. Its ``image``
                is replaced with the resolved image name.
            input_data: Written to the container's stdin.
            timeout: Seconds before the container is killed. None or 0 waits
                indefinitely.
            remove: Force-remove the container afterwards.
        """
        build = await self.images.resolve(image_spec)
        if container_spec is None:
            container_spec = ContainerSpec(image=build.image_name)
        else:
            container_spec = dataclasses.replace(container_spec, image=build.image_name)
        if not container_spec.runtime and settings.default_runtime:
            container_spec.runtime = settings.default_runtime

        container = await self.containers.create(container_spec)
        try:
            return await self._execute(container.id, input_data, timeout)
        finally:
            if remove:
                await self._remove(container.id)

    async def _remove(self, container_id: str) -> None:
        try:
            await self.containers.remove(container_id)
        except FnRunnerError as exc:
            # Cleanup errors never replace the run outcome.
            logger.warning("Removal of %s failed: %s", container_id[:12], exc)

    async def _execute(
        self, container_id: str, input_data: bytes | str, timeout: float | None
    ) -> ExecutionResult:
        if not timeout:
            return await self.executor.run(container_id, input_data)
        try:
            return await asyncio.wait_for(self.executor.run(container_id, input_data), timeout)
        except asyncio.TimeoutError:
            logger.warning("Container %s timed out after %ss, killing it", container_id[:12], timeout)

        try:
            await self.containers.kill(container_id)
        except FnRunnerError as exc:
            # The container may have exited or been removed since the deadline.
            logger.warning("Kill of %s after timeout failed: %s", container_id[:12], exc)

        stdout, stderr = io.BytesIO(), io.BytesIO()
        try:
            await self.executor.logs(container_id, stdout, stderr)
        except FnRunnerError as exc:
            logger.debug("Discarding log fetch error for %s: %s", container_id[:12], exc)
        failure = ExecutionFailure(
            container_id, None, message=f"execution timed out after {timeout} seconds"
        )
        return ExecutionResult(stdout.getvalue(), stderr.getvalue(), ExitStatus.FAILURE, failure)


# Singleton used by the MCP tools.
runner = FunctionRunner()
