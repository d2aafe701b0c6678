"""Shared fixtures: a mocked docker client behind a real EngineConnection."""

from unittest.mock import MagicMock

import pytest

from fnrunner.core.engine import EngineConnection


@pytest.fixture
def mock_client():
    """A MagicMock standing in for docker.DockerClient."""
    client = MagicMock()
    client.api.containers.return_value = []
    client.api.images.return_value = []
    client.api.pull.return_value = iter([{"status": "Pull complete"}])
    client.api.wait.return_value = {"StatusCode": 0}
    client.api.logs.return_value = b""
    return client


@pytest.fixture
def connection(mock_client):
    return EngineConnection(client=mock_client)
