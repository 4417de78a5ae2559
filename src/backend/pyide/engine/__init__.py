"""Execution engine handle and backends."""

from .handle import (
    EngineBackend,
    EngineHandle,
    Execution
)

from .local import LocalInterpreterBackend, PathEscapeError
from .sandbox import SandboxBackend

__all__ = [
    # Lifecycle
    "EngineBackend",
    "EngineHandle",
    "Execution",

    # Backends
    "LocalInterpreterBackend",
    "PathEscapeError",
    "SandboxBackend",
    "create_backend"
]


def create_backend(settings) -> EngineBackend:
    """Build the backend selected by `settings.engine_backend`."""
    if settings.engine_backend == "e2b":
        return SandboxBackend(timeout_seconds=settings.e2b_timeout_s)
    return LocalInterpreterBackend(python=settings.python_executable)
