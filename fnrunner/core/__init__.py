"""Execution core: image resolution, container lifecycle and execution."""

from fnrunner.core.containers import ContainerManager
from fnrunner.core.engine import EngineConnection, EngineEndpoint, engine
from fnrunner.core.errors import (
    AuthenticationError,
    ContainerNotFoundError,
    EngineError,
    ExecutionFailure,
    FnRunnerError,
    ImageNotFoundError,
    NotFoundError,
)
from fnrunner.core.execution import Attachment, ExecutionEngine
from fnrunner.core.images import ImageResolver
from fnrunner.core.runner import FunctionRunner, runner

__all__ = [
    "Attachment",
    "AuthenticationError",
    "ContainerManager",
    "ContainerNotFoundError",
    "EngineConnection",
    "EngineEndpoint",
    "EngineError",
    "ExecutionEngine",
    "ExecutionFailure",
    "FnRunnerError",
    "FunctionRunner",
    "ImageNotFoundError",
    "ImageResolver",
    "NotFoundError",
    "engine",
    "runner",
]
