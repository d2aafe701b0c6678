"""Image resolution: build from a context, or pull from a registry."""

from __future__ import annotations

import logging
from typing import Any

from fnrunner.config import settings
from fnrunner.core.engine import EngineConnection, engine as default_engine
from fnrunner.core.errors import AuthenticationError, EngineError, ImageNotFoundError
from fnrunner.core.types.container import BuildResult, ImageRecord, ImageSpec

logger = logging.getLogger(__name__)

MISSING_DOCKERFILE_MESSAGE = "Cannot locate specified Dockerfile"


def is_missing_dockerfile_error(exc: BaseException) -> bool:
    """Tell a "Dockerfile not found" build failure apart from other ones.

    The engine reports this case only as free text, so this matches the
    message. Engines that word it differently fall through to a hard failure.
    """
    cause = getattr(exc, "cause", None) or exc
    texts = [str(cause), str(getattr(cause, "explanation", "") or "")]
    return any(MISSING_DOCKERFILE_MESSAGE in text for text in texts)


def split_image_name(image: str) -> tuple[str, str]:
    """Split ``image`` into (repository, tag) for a pull.

    A missing tag defaults to "latest", except for digest references
    (``name@sha256:...``) where the whole string is the repository and the
    tag stays empty.
    """
    repo = image.split("@", 1)[0]
    tag = ""
    head, sep, tail = repo.rpartition(":")
    if sep and "/" not in tail:
        repo, tag = head, tail
    if tag:
        return repo, tag
    if "@" in image:
        return image, ""
    return repo, "latest"


class ImageResolver:
    """Makes sure an image exists on the engine before a container is created."""

    def __init__(self, engine: EngineConnection = default_engine) -> None:
        self._engine = engine

    async def resolve(self, spec: ImageSpec) -> BuildResult:
        """Build the image described by ``spec``, pulling it when there is nothing to build.

        Returns:
            BuildResult with the resolved image name and the captured build log
            (empty when the image was pulled).

        Raises:
            AuthenticationError: the registry rejected the credentials.
            EngineError: build or pull failed.
        """
        await self.authenticate(spec)
        name = spec.resolved_name
        if spec.force_pull:
            logger.info("Force pull requested for %s", name)
            await self.pull(spec)
            return BuildResult(image_name=name)

        source = spec.remote_uri or spec.context_dir
        logger.info("Building image %s from %s (dockerfile=%s)", name, source, spec.dockerfile)
        try:
            build_log = await self._engine.call(self._build_blocking, spec, name)
        except EngineError as exc:
            if not is_missing_dockerfile_error(exc):
                raise
            logger.info("No Dockerfile at %s, pulling %s instead", source, name)
            await self.pull(spec)
            return BuildResult(image_name=name)
        return BuildResult(image_name=name, build_log=build_log)

    async def authenticate(self, spec: ImageSpec) -> None:
        """Auth-check the registry credentials on ``spec`` and keep the identity token."""
        auth = spec.auth
        if auth is None or not auth.is_set:
            return
        if not auth.server_address:
            auth.server_address = settings.registry_server
        client = self._engine.client
        try:
            status = await self._engine.call(
                client.login,
                username=auth.username or auth.email,
                password=auth.password,
                email=auth.email or None,
                registry=auth.server_address,
                reauth=True,
            )
        except EngineError as exc:
            raise AuthenticationError(
                f"registry authentication failed for {auth.server_address}: {exc.message}",
                cause=exc.cause,
            ) from exc
        auth.identity_token = (status or {}).get("IdentityToken", "") or ""
        logger.info("Authenticated against %s as %s", auth.server_address, auth.username or auth.email)

    async def pull(self, spec: ImageSpec) -> None:
        repository, tag = split_image_name(spec.resolved_name)
        auth_config = spec.auth.to_auth_config() if spec.auth and spec.auth.is_set else None
        logger.info("Pulling %s (tag=%r)", repository, tag)
        await self._engine.call(self._pull_blocking, repository, tag, auth_config)

    async def find_image(self, name: str) -> ImageRecord:
        """Return the first image the engine lists for ``name``."""
        images = await self._engine.call(self._engine.client.api.images, name=name)
        if not images:
            raise ImageNotFoundError(name)
        return ImageRecord.from_api(images[0])

    # ── blocking helpers, run in the executor ────────────────────────

    def _build_blocking(self, spec: ImageSpec, name: str) -> str:
        # Credentials from authenticate() are cached on the client by login()
        # and sent along with the build request.
        _, logs = self._engine.client.images.build(
            path=spec.remote_uri or spec.context_dir,
            tag=name,
            dockerfile=spec.dockerfile,
            quiet=True,
        )
        return "".join(chunk.get("stream", "") for chunk in logs)

    def _pull_blocking(
        self, repository: str, tag: str, auth_config: dict[str, Any] | None
    ) -> None:
        stream = self._engine.client.api.pull(
            repository,
            tag=tag or None,
            stream=True,
            decode=True,
            auth_config=auth_config,
        )
        for message in stream:
            if "error" in message:
                raise EngineError(f"pull of {repository} failed: {message['error']}")
