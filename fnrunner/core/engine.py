"""Connection to the container engine shared by the core components.

The docker SDK is blocking, so every call goes through
:meth:`EngineConnection.call`, which runs it in the default executor and
translates SDK/transport failures into :class:`EngineError`.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import docker
from docker.errors import DockerException
from docker.tls import TLSConfig
from requests.exceptions import RequestException

from fnrunner.config import settings
from fnrunner.core.errors import EngineError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TLS_PORT = 2376


@dataclass
class EngineEndpoint:
    """A ready engine endpoint, e.g. handed over by a provisioned machine.

    ``cert_dir`` follows the docker-machine layout (ca.pem, cert.pem, key.pem).
    """

    host: str
    port: int = DEFAULT_TLS_PORT
    cert_dir: str = ""
    tls_verify: bool = True

    @property
    def base_url(self) -> str:
        if "://" in self.host:
            return self.host
        return f"tcp://{self.host}:{self.port}"

    def tls_config(self) -> TLSConfig | None:
        if not self.cert_dir:
            return None
        return TLSConfig(
            client_cert=(
                os.path.join(self.cert_dir, "cert.pem"),
                os.path.join(self.cert_dir, "key.pem"),
            ),
            ca_cert=os.path.join(self.cert_dir, "ca.pem"),
            verify=self.tls_verify,
        )

    @classmethod
    def from_settings(cls) -> EngineEndpoint | None:
        if not settings.docker_host:
            return None
        return cls(
            host=settings.docker_host,
            cert_dir=settings.docker_cert_path,
            tls_verify=settings.docker_tls_verify,
        )


class EngineConnection:
    """Owns a docker client; safe to share across concurrent executions."""

    def __init__(
        self,
        endpoint: EngineEndpoint | None = None,
        client: docker.DockerClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            raise EngineError("engine connection is not started")
        return self._client

    def _connect(self) -> docker.DockerClient:
        if self._endpoint is None:
            logger.debug("Connecting to local Docker daemon")
            client = docker.from_env()
        else:
            logger.info("Connecting to remote Docker: %s", self._endpoint.base_url)
            client = docker.DockerClient(
                base_url=self._endpoint.base_url,
                tls=self._endpoint.tls_config() or False,
            )
        client.ping()
        return client

    async def start(self) -> None:
        if self._client is not None:
            return
        loop = asyncio.get_event_loop()
        try:
            self._client = await loop.run_in_executor(None, self._connect)
        except (DockerException, RequestException) as exc:
            raise EngineError(f"failed to connect to Docker daemon: {exc}", cause=exc) from exc
        logger.info("Engine connection ready")

    async def shutdown(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        logger.info("Engine connection closed")

    async def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking engine call in the executor."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except (DockerException, RequestException) as exc:
            raise EngineError(str(exc) or exc.__class__.__name__, cause=exc) from exc


# Singleton, started/stopped by the application lifespan in main.py.
engine = EngineConnection(endpoint=EngineEndpoint.from_settings())
