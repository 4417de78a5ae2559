"""Error taxonomy for the workspace core."""


class WorkspaceError(Exception):
    """Base class for every error raised by the workspace core."""


class ProjectError(WorkspaceError):
    """A file operation was rejected by the project model."""


class DuplicateNameError(ProjectError):
    """A file with this name already exists."""


class InvalidFileNameError(DuplicateNameError):
    """The requested file name is empty or not a single path segment."""


class ProtectedFileError(ProjectError):
    """The default file cannot be deleted."""


class NotFoundError(ProjectError):
    """No file with this name exists."""


class EngineError(WorkspaceError):
    """The execution engine cannot serve the request."""


class EngineNotReady(EngineError):
    """The engine is still loading, or failed to load."""


class EngineBusy(EngineError):
    """Another execution is still running on this engine."""
