"""Durable store: one JSON slot on disk holding the project's files."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import TypeAdapter, ValidationError

from .config import DEFAULT_CONTENT, DEFAULT_FILE, STORE_KEY

log = logging.getLogger(__name__)

_FILES_ADAPTER = TypeAdapter(Dict[str, str])

# Deeply nested JSON overflows the decoder's recursion limit.
_UNREADABLE = (OSError, ValueError, RecursionError)


def default_project(default_file: str = DEFAULT_FILE) -> Dict[str, str]:
    """The project a brand-new or unreadable slot degrades to."""
    return {default_file: DEFAULT_CONTENT}


class DurableStore:
    """
    Persists a filename -> content mapping under a single key of a JSON document.

    `load` never raises: a missing, unreadable or malformed slot yields the
    default project. `save` replaces the document atomically, so readers see
    either the previous snapshot or the new one.
    """

    def __init__(self, path: str | Path, key: str = STORE_KEY, default_file: str = DEFAULT_FILE):
        self.path = Path(path).expanduser()
        self.key = key
        self.default_file = default_file
        self._lock = threading.Lock()
        self._seq = 0
        self.last_saved_seq = 0

    def _read_document(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"storage document must be an object, got {type(data).__name__}")
        return data

    def load(self) -> Dict[str, str]:
        try:
            raw = self._read_document().get(self.key)
        except _UNREADABLE as e:
            log.warning(f"[store] unreadable slot {self.path}: {e}; using default project")
            return default_project(self.default_file)

        if raw is None:
            log.info(f"[store] no saved project under {self.key!r}; using default project")
            return default_project(self.default_file)

        try:
            files = _FILES_ADAPTER.validate_python(raw, strict=True)
        except ValidationError as e:
            log.warning(f"[store] corrupt project under {self.key!r} ({e.error_count()} errors); using default project")
            return default_project(self.default_file)

        if not files:
            log.warning(f"[store] empty project under {self.key!r}; using default project")
            return default_project(self.default_file)
        return dict(files)

    def save(self, files: Mapping[str, str]) -> int:
        """Write the full snapshot and return its sequence number."""
        snapshot = dict(files)
        with self._lock:
            self._seq += 1
            seq = self._seq
            try:
                document = self._read_document()
            except _UNREADABLE:
                document = {}
            document[self.key] = snapshot

            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(document, fh, ensure_ascii=False)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
            self.last_saved_seq = seq
        log.debug(f"[store] saved {len(snapshot)} files (seq={seq})")
        return seq
