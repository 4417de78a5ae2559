"""Application context: the project, its store, the engine session and the console."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from .config import DEFAULT_FILE, Settings
from .console import ConsoleSink
from .engine import EngineHandle, create_backend
from .errors import EngineError
from .models import (
    PROJECT_BACKUP_FILENAME,
    EngineState,
    ExportedFile,
    ProjectListing,
)
from .project import ProjectModel, validate_file_name
from .prompts import Prompter, StaticPrompter
from .store import DurableStore

log = logging.getLogger(__name__)

_FILES_ADAPTER = TypeAdapter(Dict[str, str])


class View(str, Enum):
    EDITOR = "editor"
    CONSOLE = "console"


class EditorBuffer:
    """Text currently shown in the editor; only copied into the project on save."""

    def __init__(self, text: str = ""):
        self.text = text

    def load(self, text: str) -> None:
        self.text = text


class Workspace:
    """
    Owns every piece of per-session state and is handed explicitly to the
    run orchestrator and the HTTP layer.

    File operations that need the user's answer (file name, overwrite or
    delete confirmation) ask `prompter`; each call may pass its own prompter
    instead, which is how HTTP requests supply their answers.
    """

    def __init__(
        self,
        store: DurableStore,
        engine: EngineHandle,
        console: Optional[ConsoleSink] = None,
        prompter: Optional[Prompter] = None,
        default_file: str = DEFAULT_FILE,
    ):
        self.store = store
        self.engine = engine
        self.console = console if console is not None else ConsoleSink()
        self.prompter = prompter if prompter is not None else StaticPrompter()
        self.project = ProjectModel(store.load(), default_file=default_file, before_switch=self.save)
        self.editor = EditorBuffer(self.project.get_active_content())
        self.view = View.EDITOR
        self._view_listeners: List[Callable[[View], None]] = []

    @classmethod
    def from_settings(cls, settings: Settings, prompter: Optional[Prompter] = None) -> "Workspace":
        store = DurableStore(settings.store_path, key=settings.store_key, default_file=settings.default_file)
        engine = EngineHandle(create_backend(settings))
        return cls(store, engine, prompter=prompter, default_file=settings.default_file)

    # -- editor & persistence ---------------------------------------------

    def edit(self, text: str) -> None:
        self.editor.load(text)

    def save(self) -> int:
        """Copy the editor into the active file and persist the whole project."""
        self.project.set_active_content(self.editor.text)
        return self.store.save(self.project.snapshot())

    def show(self, view: View) -> None:
        self.view = view
        for listener in list(self._view_listeners):
            listener(view)

    def on_view_change(self, listener: Callable[[View], None]) -> None:
        self._view_listeners.append(listener)

    def listing(self) -> ProjectListing:
        return ProjectListing(
            files=self.project.names(),
            active_file=self.project.active_file,
            default_file=self.project.default_file,
        )

    # -- file operations ----------------------------------------------------

    def open_file(self, name: str) -> None:
        self.project.switch_active(name)
        self.editor.load(self.project.get_active_content())

    def create_file(self, prompter: Optional[Prompter] = None) -> Optional[str]:
        """Ask for a name and create the file. Returns None if the user cancelled."""
        name = (prompter or self.prompter).request_name("File name (e.g. data.py):")
        if name is None:
            return None
        self.save()
        self.project.create_file(name)
        self.editor.load(self.project.get_active_content())
        self.store.save(self.project.snapshot())
        return name

    def delete_file(self, name: str, prompter: Optional[Prompter] = None) -> bool:
        if not (prompter or self.prompter).request_confirmation(f"Delete {name}?"):
            return False
        self.save()
        was_active = name == self.project.active_file
        self.project.delete_file(name)
        if was_active:
            self.editor.load(self.project.get_active_content())
        self.store.save(self.project.snapshot())
        return True

    def import_file(self, name: str, content: str, prompter: Optional[Prompter] = None) -> bool:
        """Add or overwrite a file from an uploaded text document and make it active."""
        name = validate_file_name(name)
        if name in self.project and not (prompter or self.prompter).request_confirmation(f"Overwrite {name}?"):
            return False
        self.save()
        self.project.put_file(name, content)
        if self.project.active_file != name:
            self.project.switch_active(name)
        self.editor.load(content)
        self.store.save(self.project.snapshot())
        self.console.system(f">> Imported {name}")
        return True

    def import_project(self, document: Any, prompter: Optional[Prompter] = None) -> bool:
        """Replace every file with a project backup (a mapping or its JSON text)."""
        if isinstance(document, (str, bytes)):
            document = json.loads(document)
        try:
            files = _FILES_ADAPTER.validate_python(document, strict=True)
        except ValidationError as e:
            raise ValueError(f"not a project backup: {e.error_count()} invalid entries") from e
        if not files:
            raise ValueError("not a project backup: no files")
        if not (prompter or self.prompter).request_confirmation(f"Replace all files with {len(files)} imported files?"):
            return False
        self.save()
        self.project.replace_all(files)
        self.editor.load(self.project.get_active_content())
        self.store.save(self.project.snapshot())
        self.console.system(f">> Imported project ({len(files)} files)")
        return True

    def export_active_file(self) -> ExportedFile:
        self.save()
        name = self.project.active_file
        self.console.system(f">> Downloaded {name}")
        return ExportedFile(filename=name, content=self.project.get_active_content(), media_type="text/plain")

    def export_project(self) -> ExportedFile:
        self.save()
        content = json.dumps(dict(self.project.snapshot()), indent=2, ensure_ascii=False)
        return ExportedFile(filename=PROJECT_BACKUP_FILENAME, content=content, media_type="application/json")

    # -- engine lifecycle -----------------------------------------------------

    async def start_engine(self) -> bool:
        """Initialise the engine session once, reporting the outcome on the console."""
        if self.engine.state is not EngineState.UNINITIALIZED:
            return self.engine.is_ready
        try:
            banner = await self.engine.initialize()
        except EngineError as e:
            self.console.error(f"Error: {self.engine.failure or e}")
            return False
        self.console.system(f">> {banner} Ready.")
        return True

    async def close(self) -> None:
        self.save()
        await self.engine.close()


class Autosaver:
    """Background task saving the workspace at a fixed interval."""

    def __init__(self, workspace: Workspace, interval_s: float):
        self.workspace = workspace
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._loop())

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                self.workspace.save()
            except OSError as e:
                log.warning(f"[store] autosave failed: {e}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
