"""Data models and state definitions."""

from .console_models import ConsoleKind, ConsoleEntry

from .execution_models import (
    EngineState,
    OutputStream,
    OutputChunk,
    ExecutionResult,
    RunStatus,
    RunReport
)

from .project_models import (
    ProjectListing,
    ExportedFile,
    PROJECT_BACKUP_FILENAME
)

__all__ = [
    # Console models
    "ConsoleKind",
    "ConsoleEntry",

    # Execution models
    "EngineState",
    "OutputStream",
    "OutputChunk",
    "ExecutionResult",
    "RunStatus",
    "RunReport",

    # Project models
    "ProjectListing",
    "ExportedFile",
    "PROJECT_BACKUP_FILENAME"
]
