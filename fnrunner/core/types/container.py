from __future__ import annotations

import enum
import posixpath
from dataclasses import dataclass, field
from typing import Any

from fnrunner.config import DEFAULT_REGISTRY, NAME_PREFIX
from fnrunner.core.errors import EngineError, ExecutionFailure, FnRunnerError


@dataclass
class RegistryAuth:
    username: str = ""
    password: str = ""
    email: str = ""
    server_address: str = ""
    identity_token: str = ""

    @property
    def is_set(self) -> bool:
        return bool((self.username or self.email) and self.password)

    def to_auth_config(self) -> dict[str, str]:
        """Render the auth dict the engine expects on pull/build."""
        config = {
            "username": self.username,
            "password": self.password,
            "email": self.email,
            "serveraddress": self.server_address or DEFAULT_REGISTRY,
        }
        if self.identity_token:
            config["identitytoken"] = self.identity_token
        return {k: v for k, v in config.items() if v}


@dataclass
class ImageSpec:
    """What to build (or pull) and under which name."""

    image_name: str
    context_dir: str = ""
    remote_uri: str = ""
    dockerfile: str = "Dockerfile"
    use_prefix: bool = True
    auth: RegistryAuth | None = None
    force_pull: bool = False

    def __post_init__(self) -> None:
        if not self.dockerfile:
            self.dockerfile = "Dockerfile"
        if not self.context_dir and not self.remote_uri:
            self.context_dir = "./"

    @property
    def resolved_name(self) -> str:
        if not self.use_prefix:
            return self.image_name
        return posixpath.join(NAME_PREFIX, self.image_name)


@dataclass
class ContainerSpec:
    image: str
    command: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    runtime: str = ""


@dataclass
class ContainerInfo:
    id: str
    name: str
    image: str
    status: str
    state: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ContainerInfo:
        """Build from one entry of the engine's container listing."""
        names = data.get("Names") or []
        return cls(
            id=data["Id"],
            name=names[0].lstrip("/") if names else "",
            image=data.get("Image", ""),
            status=data.get("Status", ""),
            state=data.get("State", ""),
        )


@dataclass
class ImageRecord:
    id: str
    name: str
    tag: str
    digest: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ImageRecord:
        repo_tags = [t for t in data.get("RepoTags") or [] if t != "<none>:<none>"]
        repo_digests = data.get("RepoDigests") or []
        name, tag = "", ""
        if repo_tags:
            name, _, tag = repo_tags[0].rpartition(":")
        digest = repo_digests[0].partition("@")[2] if repo_digests else ""
        if not name and repo_digests:
            name = repo_digests[0].partition("@")[0]
        return cls(id=data.get("Id", ""), name=name, tag=tag, digest=digest)


@dataclass
class BuildResult:
    image_name: str
    build_log: str = ""


class ExitStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ENGINE_ERROR = "engine_error"


@dataclass
class ExecutionResult:
    stdout: bytes
    stderr: bytes
    status: ExitStatus
    error: FnRunnerError | None = None
    exit_code: int | None = None

    @classmethod
    def classify(
        cls, stdout: bytes, stderr: bytes, error: FnRunnerError | None
    ) -> ExecutionResult:
        """Map the outcome delivered by a container wait onto a result."""
        if error is None:
            return cls(stdout, stderr, ExitStatus.SUCCESS, exit_code=0)
        if isinstance(error, ExecutionFailure):
            return cls(stdout, stderr, ExitStatus.FAILURE, error, error.exit_code)
        if isinstance(error, EngineError):
            return cls(stdout, stderr, ExitStatus.ENGINE_ERROR, error)
        raise TypeError(f"unexpected wait outcome: {error!r}")

    @property
    def ok(self) -> bool:
        return self.status is ExitStatus.SUCCESS

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    def raise_for_status(self) -> None:
        """Raise the classified error, if any. Output stays readable on self."""
        if self.error is not None:
            raise self.error
