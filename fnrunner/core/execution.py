"""Running a created container to completion.

One execution moves through Created -> Started -> Attached -> Waiting ->
Terminated. Attaching and waiting are separate background flows sharing
only the container ID; :meth:`ExecutionEngine.run` suspends only while it
awaits the wait outcome.
"""

from __future__ import annotations

import asyncio
import io
import logging
import socket
import ssl
from typing import IO, Any

from docker.utils.socket import STDERR, STDOUT, frames_iter

from fnrunner.core.engine import EngineConnection, engine as default_engine
from fnrunner.core.errors import EngineError, ExecutionFailure, FnRunnerError
from fnrunner.core.types.container import ExecutionResult

logger = logging.getLogger(__name__)

ATTACH_PARAMS = {"stdin": 1, "stdout": 1, "stderr": 1, "stream": 1, "logs": 1}


class Attachment:
    """Handle on a live attach stream; :meth:`wait` joins the I/O pump."""

    def __init__(self, container_id: str, sock: Any, pump: asyncio.Future) -> None:
        self.container_id = container_id
        self._sock = sock
        self._pump = pump
        pump.add_done_callback(self._retrieve_failure)

    def done(self) -> bool:
        return self._pump.done()

    async def wait(self) -> None:
        try:
            await self._pump
        except OSError as exc:
            raise EngineError(
                f"attach stream to {self.container_id[:12]} failed: {exc}", cause=exc
            ) from exc

    def close(self) -> None:
        """Close the socket, which also ends a pump blocked on reading output."""
        self._sock.close()

    def _retrieve_failure(self, pump: asyncio.Future) -> None:
        # Marks the failure retrieved when nobody awaits the pump, e.g. after a
        # caller-side deadline cancelled run().
        if not pump.cancelled() and pump.exception() is not None:
            logger.debug(
                "Attach stream to %s failed: %s", self.container_id[:12], pump.exception()
            )


class ExecutionEngine:
    def __init__(self, engine: EngineConnection = default_engine) -> None:
        self._engine = engine

    async def start(self, container_id: str) -> None:
        await self._engine.call(self._engine.client.api.start, container_id)
        logger.info("Started container %s", container_id[:12])

    async def attach(
        self,
        container_id: str,
        stdin: IO[bytes] | None = None,
        stdout: IO[bytes] | None = None,
        stderr: IO[bytes] | None = None,
    ) -> Attachment:
        """Attach to a started container without blocking on its run.

        ``stdin`` is written to the container and then its write side is
        closed. Output frames are forwarded to ``stdout``/``stderr`` when
        either sink is given; otherwise nothing is read from the stream.
        On TLS connections with sinks the write side stays open, so the
        container sees end of input only once the stream is closed.
        """
        sock = await self._engine.call(
            self._engine.client.api.attach_socket, container_id, params=ATTACH_PARAMS
        )
        loop = asyncio.get_event_loop()
        pump = loop.run_in_executor(None, self._pump, sock, stdin, stdout, stderr)
        logger.debug("Attached to container %s", container_id[:12])
        return Attachment(container_id, sock, pump)

    def wait_container(self, container_id: str) -> asyncio.Task:
        """Start waiting for the container in the background.

        Must be called from a running event loop. The returned task resolves
        to exactly one outcome and never raises for it:

        * ``None`` when the container exited with code 0
        * :class:`ExecutionFailure` for a non-zero exit code
        * :class:`EngineError` when the wait call itself failed
        """
        loop = asyncio.get_event_loop()
        return loop.create_task(self._wait(container_id))

    async def logs(
        self,
        container_id: str,
        stdout: IO[bytes] | None = None,
        stderr: IO[bytes] | None = None,
    ) -> None:
        """Copy the container's full stdout/stderr history into the sinks."""
        api = self._engine.client.api
        if stdout is not None:
            stdout.write(await self._engine.call(api.logs, container_id, stdout=True, stderr=False))
        if stderr is not None:
            stderr.write(await self._engine.call(api.logs, container_id, stdout=False, stderr=True))

    async def run(self, container_id: str, input_data: bytes | str = b"") -> ExecutionResult:
        """Start the container, feed it ``input_data`` and wait for it to finish.

        Returns:
            ExecutionResult holding everything the container wrote, classified
            as success, failure (non-zero exit) or engine error (wait failed).
            Output is filled in for failures too.

        Raises:
            EngineError: the container could not be started or attached to.
        """
        if isinstance(input_data, str):
            input_data = input_data.encode("utf-8")

        await self.start(container_id)
        attachment = await self.attach(container_id, stdin=io.BytesIO(input_data))
        outcome = await self.wait_container(container_id)

        try:
            await attachment.wait()
        except EngineError as exc:
            logger.warning("Input stream for %s ended early: %s", container_id[:12], exc)

        stdout, stderr = io.BytesIO(), io.BytesIO()
        try:
            await self.logs(container_id, stdout, stderr)
        except FnRunnerError as exc:
            # Log errors never replace the wait outcome.
            logger.debug("Discarding log fetch error for %s: %s", container_id[:12], exc)

        result = ExecutionResult.classify(stdout.getvalue(), stderr.getvalue(), outcome)
        logger.info(
            "Container %s finished | status=%s | exit_code=%s | stdout=%d bytes | stderr=%d bytes",
            container_id[:12],
            result.status.value,
            result.exit_code,
            len(result.stdout),
            len(result.stderr),
        )
        return result

    async def _wait(self, container_id: str) -> FnRunnerError | None:
        try:
            response = await self._engine.call(
                self._engine.client.api.wait, container_id, timeout=None
            )
        except EngineError as exc:
            logger.warning("Waiting on container %s failed: %s", container_id[:12], exc)
            return exc

        code = response.get("StatusCode", -1)
        if code == 0:
            return None
        details = {}
        engine_message = (response.get("Error") or {}).get("Message")
        if engine_message:
            details["engine_message"] = engine_message
        return ExecutionFailure(container_id, code, details=details)

    @staticmethod
    def _pump(
        sock: Any,
        stdin: IO[bytes] | None,
        stdout: IO[bytes] | None,
        stderr: IO[bytes] | None,
    ) -> None:
        raw = getattr(sock, "_sock", sock)
        try:
            if stdin is not None:
                data = stdin.read()
                if data:
                    raw.sendall(data)
            forward = stdout is not None or stderr is not None
            # Half-closing a TLS socket tears down the session, and with it the
            # output stream still to be read.
            if not (forward and isinstance(raw, ssl.SSLSocket)):
                raw.shutdown(socket.SHUT_WR)
            if not forward:
                return
            for stream_id, payload in frames_iter(sock, tty=False):
                sink = stdout if stream_id == STDOUT else stderr if stream_id == STDERR else None
                if sink is not None:
                    sink.write(payload)
        finally:
            sock.close()
