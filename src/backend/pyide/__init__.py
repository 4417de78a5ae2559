"""
Python Workspace Backend

Project file store and execution orchestrator for a single-user, in-browser
Python workspace: durable files, one active file, sandboxed runs with
streamed console output.
"""

# Version info
__version__ = "0.1.0"
__title__ = "Python Workspace Backend"
__description__ = "Project file store and run orchestrator for a sandboxed Python workspace"

# Import main components for easy access
from .console import ConsoleSink
from .engine import EngineHandle, LocalInterpreterBackend
from .orchestrator import RunOrchestrator
from .project import ProjectModel
from .store import DurableStore
from .workspace import Workspace

# Export commonly used classes
__all__ = [
    # Core state
    "DurableStore",
    "ProjectModel",
    "ConsoleSink",
    "Workspace",

    # Execution
    "EngineHandle",
    "LocalInterpreterBackend",
    "RunOrchestrator",

    # Package info
    "__version__",
    "__title__",
    "__description__"
]
