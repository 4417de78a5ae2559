"""Engine backend that runs each program in a local Python subprocess."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from ..models import OutputChunk, OutputStream
from .handle import Emit

log = logging.getLogger(__name__)

# Output lines longer than this are emitted in pieces of at most this size.
LINE_LIMIT_BYTES = 1024 * 1024

_BANNER_CODE = "import sys; print('Python %d.%d' % sys.version_info[:2])"

# Host variables a child interpreter needs to start and locate its libraries.
INHERITED_ENV = ("PATH", "LANG", "LC_ALL", "LC_CTYPE", "TMPDIR", "TEMP", "TMP", "SYSTEMROOT", "VIRTUAL_ENV")


class PathEscapeError(ValueError):
    pass


class LocalInterpreterBackend:
    """
    The virtual filesystem is a private temporary directory. Every run starts
    a fresh interpreter with that directory as its working directory, so
    modules imported by a previous run never leak into the next one.

    This is process isolation only, not a sandbox: programs run as the server
    user and can reach the host filesystem. They get a minimal environment
    (see `child_environment`) so server secrets are not visible to them. Use
    `SandboxBackend` when running untrusted code.
    """

    def __init__(self, python: Optional[str] = None, root: Optional[str | Path] = None):
        self.python = python or sys.executable
        self._requested_root = Path(root) if root is not None else None
        self.root: Optional[Path] = None
        self._owns_root = False

    async def start(self) -> str:
        if self._requested_root is not None:
            self._requested_root.mkdir(parents=True, exist_ok=True)
            self.root = self._requested_root.resolve()
        else:
            self.root = Path(tempfile.mkdtemp(prefix="pyide-")).resolve()
            self._owns_root = True

        proc = await asyncio.create_subprocess_exec(
            self.python, "-c", _BANNER_CODE,
            cwd=str(self.root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            output = (stderr or stdout or b"").decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"`{self.python}` failed with exit code {proc.returncode}: {output}")
        return stdout.decode("utf-8", errors="replace").strip()

    def resolve(self, path: str) -> Path:
        """Map a project file name to a location inside the root directory."""
        if self.root is None:
            raise RuntimeError("backend not started")
        rp = Path(path)
        if rp.is_absolute():
            raise PathEscapeError(f"Absolute paths are not allowed: {path}")
        candidate = (self.root / rp).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as e:
            raise PathEscapeError(f"Path escapes engine filesystem: {path}") from e
        return candidate

    async def write_file(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8"))

    def list_files(self) -> List[str]:
        if self.root is None:
            return []
        return sorted(p.relative_to(self.root).as_posix() for p in self.root.rglob("*") if p.is_file())

    async def reset(self) -> None:
        # Each run is a new process; there is no interpreter state to clear.
        return None

    async def run(self, source: str, emit: Emit) -> Optional[int]:
        if self.root is None:
            raise RuntimeError("backend not started")
        proc = await asyncio.create_subprocess_exec(
            self.python, "-u", "-c", source,
            cwd=str(self.root),
            env=child_environment(self.root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=LINE_LIMIT_BYTES,
        )
        try:
            await asyncio.gather(
                _pump(proc.stdout, OutputStream.STDOUT, emit),
                _pump(proc.stderr, OutputStream.STDERR, emit),
            )
            return await proc.wait()
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
                log.warning(f"[engine] killed pid={proc.pid} after an aborted run")

    async def close(self) -> None:
        if self._owns_root and self.root is not None:
            shutil.rmtree(self.root, ignore_errors=True)
            log.info(f"[engine] removed {self.root}")


def child_environment(root: Path) -> Dict[str, str]:
    """Environment for user programs: none of the server's own variables."""
    env = {k: v for k, v in os.environ.items() if k in INHERITED_ENV}
    env.update({
        "HOME": str(root),
        "PYTHONUNBUFFERED": "1",
        "PYTHONIOENCODING": "utf-8",
        "PYTHONDONTWRITEBYTECODE": "1",
    })
    return env


async def _pump(reader: Optional[asyncio.StreamReader], stream: OutputStream, emit: Emit) -> None:
    if reader is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        try:
            line = await reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            # EOF; whatever is left has no trailing newline
            if e.partial:
                emit(OutputChunk(stream=stream, text=decoder.decode(e.partial, final=True).rstrip("\r")))
            return
        except asyncio.LimitOverrunError:
            # Overlong line: hand it over in pieces of at most the buffer limit.
            piece = await reader.read(LINE_LIMIT_BYTES)
            emit(OutputChunk(stream=stream, text=decoder.decode(piece)))
            continue
        emit(OutputChunk(stream=stream, text=decoder.decode(line).rstrip("\r\n")))
