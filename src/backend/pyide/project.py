"""In-memory project model: the authoritative file set and the active file."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from .config import DEFAULT_FILE, NEW_FILE_CONTENT
from .errors import (
    DuplicateNameError,
    InvalidFileNameError,
    NotFoundError,
    ProtectedFileError,
)

log = logging.getLogger(__name__)


def validate_file_name(name: Optional[str]) -> str:
    """Return `name` if it is a usable single path segment, else raise InvalidFileNameError."""
    if name is None or not name.strip():
        raise InvalidFileNameError("file name cannot be empty")
    if name != name.strip():
        raise InvalidFileNameError(f"file name cannot start or end with whitespace: {name!r}")
    if name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidFileNameError(f"file name must be a single path segment: {name!r}")
    return name


class ProjectModel:
    """
    Filename -> content mapping plus the active file pointer.

    Every mutation keeps two invariants: the mapping is never empty and
    `active_file` names an existing file. Dict insertion order is the
    display order.
    """

    def __init__(
        self,
        files: Mapping[str, str],
        default_file: str = DEFAULT_FILE,
        before_switch: Optional[Callable[[], None]] = None,
    ):
        if not files:
            raise ValueError("a project needs at least one file")
        self._files: Dict[str, str] = dict(files)
        self.default_file = default_file
        self.before_switch = before_switch
        self._active = default_file if default_file in self._files else next(iter(self._files))

    # -- queries -----------------------------------------------------------

    @property
    def active_file(self) -> str:
        return self._active

    def names(self) -> List[str]:
        return list(self._files)

    def get(self, name: str) -> str:
        try:
            return self._files[name]
        except KeyError:
            raise NotFoundError(f"no such file: {name}") from None

    def get_active_content(self) -> str:
        return self._files[self._active]

    def snapshot(self) -> Mapping[str, str]:
        """Read-only copy; later edits to the model do not show through it."""
        return MappingProxyType(dict(self._files))

    def __contains__(self, name: object) -> bool:
        return name in self._files

    def __len__(self) -> int:
        return len(self._files)

    # -- mutations ---------------------------------------------------------

    def set_active_content(self, text: str) -> None:
        self._files[self._active] = text

    def create_file(self, name: Optional[str], content: str = NEW_FILE_CONTENT) -> str:
        name = validate_file_name(name)
        if name in self._files:
            raise DuplicateNameError(f"file already exists: {name}")
        self._files[name] = content
        self._active = name
        log.info(f"[project] created {name}")
        return name

    def put_file(self, name: str, content: str) -> bool:
        """Create or overwrite `name` without switching to it. Returns True if it replaced a file."""
        name = validate_file_name(name)
        existed = name in self._files
        self._files[name] = content
        return existed

    def delete_file(self, name: str) -> None:
        if name == self.default_file:
            raise ProtectedFileError(f"{name} is the default file and cannot be deleted")
        if name not in self._files:
            raise NotFoundError(f"no such file: {name}")
        if len(self._files) == 1:
            raise ProtectedFileError(f"{name} is the last file and cannot be deleted")
        del self._files[name]
        if self._active == name:
            self._active = next(iter(self._files))
        log.info(f"[project] deleted {name}; active is {self._active}")

    def switch_active(self, name: str) -> None:
        if name not in self._files:
            raise NotFoundError(f"no such file: {name}")
        if self.before_switch is not None:
            self.before_switch()
        self._active = name

    def replace_all(self, files: Mapping[str, str]) -> None:
        """Swap in a whole project (backup restore). The default file is kept if absent."""
        incoming = {validate_file_name(n): c for n, c in files.items()}
        if self.default_file not in incoming:
            incoming = {self.default_file: self._files.get(self.default_file, NEW_FILE_CONTENT), **incoming}
        self._files = incoming
        if self._active not in self._files:
            self._active = self.default_file
