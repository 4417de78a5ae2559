"""Execution engine and run models."""

from typing import Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EngineState(str, Enum):
    """Lifecycle of an engine session."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    FAILED = "failed"


class OutputStream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class OutputChunk(BaseModel):
    """A piece of text emitted by a running program."""
    model_config = ConfigDict(frozen=True)

    stream: OutputStream
    text: str


class ExecutionResult(BaseModel):
    """Outcome of one execution, available once its output is exhausted."""
    exit_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.exit_code


class RunStatus(str, Enum):
    """How a run request ended from the orchestrator's point of view."""
    COMPLETED = "completed"
    ENGINE_NOT_READY = "engine_not_ready"
    ENGINE_FAILED = "engine_failed"
    BUSY = "busy"


class RunReport(BaseModel):
    """Summary of a run request."""
    status: RunStatus
    active_file: str = Field(..., min_length=1)
    files_synced: int = 0
    result: Optional[ExecutionResult] = None
    first_entry: int = 0
    next_entry: int = 0
