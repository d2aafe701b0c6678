"""Errors raised by the execution core.

Hierarchy:
    FnRunnerError
    ├── NotFoundError
    │   ├── ImageNotFoundError
    │   └── ContainerNotFoundError
    ├── ExecutionFailure - the container ran and exited non-zero
    └── EngineError - any failure reported by the container engine
        └── AuthenticationError

Callers branch on ExecutionFailure ("ran, but failed") versus EngineError
("could not run"). Nothing in the core retries.
"""

from __future__ import annotations

from typing import Any


class FnRunnerError(Exception):
    """Base class for every error the core raises."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({detail_str})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and tool responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(FnRunnerError):
    """A lookup matched nothing."""


class ImageNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__("image not found", details={"name": name})
        self.name = name


class ContainerNotFoundError(NotFoundError):
    def __init__(self, key: str) -> None:
        super().__init__("container not found", details={"key": key})
        self.key = key


class ExecutionFailure(FnRunnerError):
    """The container exited with a non-zero status.

    ``exit_code`` is None when the run was cut short by a caller-side
    deadline and the container had to be killed.
    """

    def __init__(
        self,
        container_id: str,
        exit_code: int | None,
        message: str = "container exited with failure",
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"container_id": container_id[:12], "exit_code": exit_code}
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.container_id = container_id
        self.exit_code = exit_code


class EngineError(FnRunnerError):
    """Wraps a failure from the engine connection.

    The original exception is kept on ``cause`` (and as ``__cause__`` when
    raised with ``from``).
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class AuthenticationError(EngineError):
    """The registry rejected the supplied credentials."""
