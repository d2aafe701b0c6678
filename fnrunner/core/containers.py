"""Container lifecycle: create, find, list, kill and remove fnrunner containers."""

from __future__ import annotations

import logging
import uuid

from docker.errors import NotFound

from fnrunner.config import NAME_PREFIX
from fnrunner.core.engine import EngineConnection, engine as default_engine
from fnrunner.core.errors import ContainerNotFoundError, EngineError
from fnrunner.core.types.container import ContainerInfo, ContainerSpec

logger = logging.getLogger(__name__)

IMAGE_PREFIX = f"{NAME_PREFIX}/"


def generate_container_name() -> str:
    return f"{NAME_PREFIX}-{uuid.uuid4()}"


def normalize_image_name(image: str) -> str:
    """Give a bare image name the fnrunner prefix; prefixed names pass through."""
    if image.startswith(IMAGE_PREFIX):
        return image
    return IMAGE_PREFIX + image


class ContainerManager:
    """Creates and tracks containers by engine ID. Knows nothing about execution."""

    def __init__(self, engine: EngineConnection = default_engine) -> None:
        self._engine = engine

    async def create(self, spec: ContainerSpec) -> ContainerInfo:
        """Create (but do not start) a container with stdin open for a single write."""
        api = self._engine.client.api
        name = generate_container_name()
        host_config = api.create_host_config(binds=spec.volumes or None, runtime=spec.runtime or None)
        # stdin_open also sets StdinOnce: stdin closes once the first attach detaches.
        response = await self._engine.call(
            api.create_container,
            image=spec.image,
            command=spec.command or None,
            environment=spec.env or None,
            stdin_open=True,
            name=name,
            host_config=host_config,
        )
        for warning in response.get("Warnings") or []:
            logger.warning("Engine warning for %s: %s", name, warning)
        logger.info("Created container %s (%s) from %s", name, response["Id"][:12], spec.image)
        return ContainerInfo(
            id=response["Id"],
            name=name,
            image=spec.image,
            status="Created",
            state="created",
        )

    async def remove(self, container_id: str) -> None:
        """Force-remove the container, running or not."""
        api = self._engine.client.api
        await self._call_by_id(container_id, api.remove_container, container_id, force=True)
        logger.info("Removed container %s", container_id[:12])

    async def kill(self, container_id: str) -> None:
        """Send SIGKILL to a running container. The container is kept."""
        api = self._engine.client.api
        await self._call_by_id(container_id, api.kill, container_id)
        logger.info("Killed container %s", container_id[:12])

    async def find_by_id(self, container_id: str) -> ContainerInfo:
        for container in await self._all():
            if container.id == container_id:
                return container
        raise ContainerNotFoundError(container_id)

    async def find_by_image(self, image: str) -> ContainerInfo:
        image = normalize_image_name(image)
        for container in await self._all():
            if container.image == image:
                return container
        raise ContainerNotFoundError(image)

    async def list_containers(self) -> list[ContainerInfo]:
        """All containers, stopped ones included, whose image is fnrunner's."""
        return [c for c in await self._all() if c.image.startswith(IMAGE_PREFIX)]

    async def _all(self) -> list[ContainerInfo]:
        entries = await self._engine.call(self._engine.client.api.containers, all=True)
        return [ContainerInfo.from_api(entry) for entry in entries]

    async def _call_by_id(self, container_id: str, func, *args, **kwargs) -> None:
        try:
            await self._engine.call(func, *args, **kwargs)
        except EngineError as exc:
            if isinstance(exc.cause, NotFound):
                raise ContainerNotFoundError(container_id) from exc
            raise
