"""Unit tests for ExecutionEngine: wait outcomes, attach and the run sequence."""

import asyncio
import io
import logging
import ssl
from unittest.mock import MagicMock, call, patch

import pytest
from docker.errors import APIError
from requests.exceptions import ConnectionError as RequestsConnectionError

from fnrunner.core.errors import EngineError, ExecutionFailure
from fnrunner.core.execution import ATTACH_PARAMS, ExecutionEngine
from fnrunner.core.types.container import ExitStatus

CONTAINER_ID = "f" * 64


@pytest.fixture
def executor(connection):
    return ExecutionEngine(connection)


@pytest.fixture
def fake_socket(mock_client):
    sock = MagicMock()
    mock_client.api.attach_socket.return_value = sock
    return sock


def split_logs(container_id, stdout=True, stderr=True):
    if stdout:
        return b"hello from stdout\n"
    return b"warning on stderr\n"


class TestWaitContainer:
    @pytest.mark.asyncio
    async def test_exit_zero_delivers_none(self, executor, mock_client):
        task = executor.wait_container(CONTAINER_ID)

        assert await task is None
        mock_client.api.wait.assert_called_once_with(CONTAINER_ID, timeout=None)

    @pytest.mark.asyncio
    async def test_non_zero_exit_delivers_execution_failure(self, executor, mock_client):
        mock_client.api.wait.return_value = {"StatusCode": 2, "Error": {"Message": "oom"}}

        outcome = await executor.wait_container(CONTAINER_ID)

        assert isinstance(outcome, ExecutionFailure)
        assert outcome.exit_code == 2
        assert outcome.container_id == CONTAINER_ID
        assert outcome.details["engine_message"] == "oom"

    @pytest.mark.asyncio
    async def test_wait_error_delivers_that_error(self, executor, mock_client):
        cause = RequestsConnectionError("connection aborted")
        mock_client.api.wait.side_effect = cause

        outcome = await executor.wait_container(CONTAINER_ID)

        assert isinstance(outcome, EngineError)
        assert not isinstance(outcome, ExecutionFailure)
        assert outcome.cause is cause

    @pytest.mark.asyncio
    async def test_delivers_one_value_and_completes(self, executor, mock_client):
        mock_client.api.wait.return_value = {"StatusCode": 1}
        task = executor.wait_container(CONTAINER_ID)

        outcome = await task

        assert task.done()
        assert task.result() is outcome
        assert mock_client.api.wait.call_count == 1


class TestAttach:
    @pytest.mark.asyncio
    async def test_writes_input_then_closes_write_side(self, executor, mock_client, fake_socket):
        attachment = await executor.attach(CONTAINER_ID, stdin=io.BytesIO(b"payload"))
        await attachment.wait()

        mock_client.api.attach_socket.assert_called_once_with(CONTAINER_ID, params=ATTACH_PARAMS)
        fake_socket._sock.sendall.assert_called_once_with(b"payload")
        fake_socket._sock.shutdown.assert_called_once()
        fake_socket.close.assert_called_once()
        assert attachment.done()

    @pytest.mark.asyncio
    async def test_forwards_output_frames_to_sinks(self, executor, fake_socket):
        stdout, stderr = io.BytesIO(), io.BytesIO()
        frames = [(1, b"out-1 "), (2, b"err-1"), (1, b"out-2")]

        with patch("fnrunner.core.execution.frames_iter", return_value=iter(frames)) as frames_iter:
            attachment = await executor.attach(CONTAINER_ID, stdout=stdout, stderr=stderr)
            await attachment.wait()

        frames_iter.assert_called_once_with(fake_socket, tty=False)
        assert stdout.getvalue() == b"out-1 out-2"
        assert stderr.getvalue() == b"err-1"
        fake_socket._sock.sendall.assert_not_called()

    @pytest.mark.asyncio
    async def test_socket_failure_surfaces_as_engine_error(self, executor, fake_socket):
        fake_socket._sock.sendall.side_effect = BrokenPipeError("broken pipe")

        attachment = await executor.attach(CONTAINER_ID, stdin=io.BytesIO(b"x"))

        with pytest.raises(EngineError, match="broken pipe"):
            await attachment.wait()
        fake_socket.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_closes_socket(self, executor, fake_socket):
        with patch("fnrunner.core.execution.frames_iter", return_value=iter([])):
            attachment = await executor.attach(CONTAINER_ID, stdout=io.BytesIO())
            attachment.close()
            await attachment.wait()

        assert fake_socket.close.called


class TestLogs:
    @pytest.mark.asyncio
    async def test_fetches_each_stream_separately(self, executor, mock_client):
        mock_client.api.logs.side_effect = split_logs
        stdout, stderr = io.BytesIO(), io.BytesIO()

        await executor.logs(CONTAINER_ID, stdout, stderr)

        assert stdout.getvalue() == b"hello from stdout\n"
        assert stderr.getvalue() == b"warning on stderr\n"
        assert mock_client.api.logs.call_args_list == [
            call(CONTAINER_ID, stdout=True, stderr=False),
            call(CONTAINER_ID, stdout=False, stderr=True),
        ]


class TestRun:
    @pytest.mark.asyncio
    async def test_success_returns_output(self, executor, mock_client, fake_socket):
        mock_client.api.logs.side_effect = split_logs

        result = await executor.run(CONTAINER_ID, "input text")

        assert result.ok
        assert result.error is None
        assert result.stdout == b"hello from stdout\n"
        assert result.stderr == b"warning on stderr\n"
        mock_client.api.start.assert_called_once_with(CONTAINER_ID)
        fake_socket._sock.sendall.assert_called_once_with(b"input text")

    @pytest.mark.asyncio
    async def test_runs_steps_in_order(self, executor, mock_client, fake_socket):
        await executor.run(CONTAINER_ID, b"")

        names = [c[0] for c in mock_client.api.method_calls]
        assert names.index("start") < names.index("attach_socket") < names.index("wait") < names.index("logs")

    @pytest.mark.asyncio
    async def test_non_zero_exit_keeps_partial_output(self, executor, mock_client, fake_socket):
        mock_client.api.wait.return_value = {"StatusCode": 1}
        mock_client.api.logs.side_effect = split_logs

        result = await executor.run(CONTAINER_ID, b"")

        assert result.status is ExitStatus.FAILURE
        assert isinstance(result.error, ExecutionFailure)
        assert result.exit_code == 1
        assert result.stdout == b"hello from stdout\n"

    @pytest.mark.asyncio
    async def test_wait_error_still_attempts_logs(self, executor, mock_client, fake_socket):
        mock_client.api.wait.side_effect = APIError("daemon went away")
        mock_client.api.logs.side_effect = split_logs

        result = await executor.run(CONTAINER_ID, b"")

        assert result.status is ExitStatus.ENGINE_ERROR
        assert "daemon went away" in str(result.error)
        assert mock_client.api.logs.call_count == 2

    @pytest.mark.asyncio
    async def test_log_failure_never_masks_outcome(self, executor, mock_client, fake_socket):
        mock_client.api.wait.return_value = {"StatusCode": 3}
        mock_client.api.logs.side_effect = APIError("logs unavailable")

        result = await executor.run(CONTAINER_ID, b"")

        assert isinstance(result.error, ExecutionFailure)
        assert result.stdout == b""
        assert result.stderr == b""

    @pytest.mark.asyncio
    async def test_log_failure_after_success_is_still_success(self, executor, mock_client, fake_socket):
        mock_client.api.logs.side_effect = APIError("logs unavailable")

        result = await executor.run(CONTAINER_ID, b"")

        assert result.ok

    @pytest.mark.asyncio
    async def test_input_stream_failure_does_not_mask_outcome(self, executor, mock_client, fake_socket):
        fake_socket._sock.sendall.side_effect = BrokenPipeError("container closed stdin")

        result = await executor.run(CONTAINER_ID, b"ignored")

        assert result.ok

    @pytest.mark.asyncio
    async def test_start_failure_raises(self, executor, mock_client):
        mock_client.api.start.side_effect = APIError("cannot start")

        with pytest.raises(EngineError, match="cannot start"):
            await executor.run(CONTAINER_ID, b"")
        mock_client.api.attach_socket.assert_not_called()
        mock_client.api.wait.assert_not_called()


class TestTlsAttach:
    @pytest.fixture
    def tls_socket(self, fake_socket):
        fake_socket._sock = MagicMock(spec=ssl.SSLSocket)
        return fake_socket

    @pytest.mark.asyncio
    async def test_keeps_tls_write_side_open_while_forwarding(self, executor, tls_socket):
        stdout = io.BytesIO()

        with patch("fnrunner.core.execution.frames_iter", return_value=iter([(1, b"out")])):
            attachment = await executor.attach(CONTAINER_ID, stdin=io.BytesIO(b"in"), stdout=stdout)
            await attachment.wait()

        tls_socket._sock.sendall.assert_called_once_with(b"in")
        tls_socket._sock.shutdown.assert_not_called()
        assert stdout.getvalue() == b"out"

    @pytest.mark.asyncio
    async def test_half_closes_tls_without_sinks(self, executor, tls_socket):
        attachment = await executor.attach(CONTAINER_ID, stdin=io.BytesIO(b"in"))
        await attachment.wait()

        tls_socket._sock.shutdown.assert_called_once()


@pytest.mark.asyncio
async def test_unawaited_pump_failure_is_retrieved(executor, fake_socket, caplog):
    fake_socket._sock.sendall.side_effect = BrokenPipeError("stdin closed")
    caplog.set_level(logging.DEBUG, logger="fnrunner.core.execution")

    attachment = await executor.attach(CONTAINER_ID, stdin=io.BytesIO(b"x"))
    while not attachment.done():
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.01)

    assert "Attach stream to" in caplog.text
    assert "stdin closed" in caplog.text
