"""Engine backend running programs in a remote E2B sandbox."""

import json
import logging
import posixpath
import time
from typing import Any, Optional

from e2b_code_interpreter import AsyncSandbox

from ..config import E2B_SANDBOX_TIMEOUT_S
from ..models import OutputChunk, OutputStream
from .handle import Emit

log = logging.getLogger(__name__)

SANDBOX_ROOT = "/home/user"

# Lifetime extensions closer together than this are skipped.
EXTEND_EVERY_S = 30


def _reset_code(root: str) -> str:
    """Drop project modules from the kernel so edited files are re-imported."""
    return f'''
import importlib, os, sys
_root = os.path.realpath({json.dumps(root)})
os.chdir(_root)
if _root not in sys.path:
    sys.path.insert(0, _root)
for _name, _mod in list(sys.modules.items()):
    _file = getattr(_mod, "__file__", None) or ""
    if _file and os.path.realpath(_file).startswith(_root + os.sep):
        del sys.modules[_name]
importlib.invalidate_caches()
'''


def _emit_lines(emit: Emit, stream: OutputStream, message: Any) -> None:
    """Split an E2B output message into console lines."""
    text = getattr(message, "line", message)
    text = str(text) if text is not None else ""
    for line in text.splitlines():
        emit(OutputChunk(stream=stream, text=line))


def format_execution_error(error: Any) -> str:
    """Best-effort text for an E2B ExecutionError."""
    traceback = getattr(error, "traceback", None)
    if traceback:
        return str(traceback)
    name = getattr(error, "name", type(error).__name__)
    value = getattr(error, "value", "")
    return f"{name}: {value}"


class SandboxBackend:
    """The sandbox's home directory is the virtual filesystem and its Jupyter kernel the interpreter."""

    def __init__(self, timeout_seconds: int = E2B_SANDBOX_TIMEOUT_S, root: str = SANDBOX_ROOT):
        self.timeout_seconds = timeout_seconds
        self.root = root
        self._sbx: Optional[AsyncSandbox] = None
        self._extended_at = 0.0

    @property
    def sandbox(self) -> AsyncSandbox:
        if self._sbx is None:
            raise RuntimeError("sandbox not started")
        return self._sbx

    async def start(self) -> str:
        self._sbx = await AsyncSandbox.create(timeout=self.timeout_seconds)
        self._extended_at = time.monotonic()
        log.info(f"[engine] sandbox created: sandboxId={self._sbx.sandbox_id} timeout_s={self.timeout_seconds}")
        return f"Python (sandbox {self._sbx.sandbox_id})"

    async def _extend_lifetime(self) -> None:
        """Push the sandbox timeout forward so an active session is not reaped mid-use."""
        now = time.monotonic()
        if now - self._extended_at < EXTEND_EVERY_S:
            return
        await self.sandbox.set_timeout(self.timeout_seconds)
        self._extended_at = now

    async def write_file(self, path: str, content: str) -> None:
        await self._extend_lifetime()
        await self.sandbox.files.write(posixpath.join(self.root, path), content)

    async def reset(self) -> None:
        await self._extend_lifetime()
        execution = await self.sandbox.run_code(_reset_code(self.root))
        if getattr(execution, "error", None):
            raise RuntimeError(f"sandbox reset failed: {format_execution_error(execution.error)}")

    async def run(self, source: str, emit: Emit) -> Optional[int]:
        await self._extend_lifetime()
        execution = await self.sandbox.run_code(
            source,
            on_stdout=lambda msg: _emit_lines(emit, OutputStream.STDOUT, msg),
            on_stderr=lambda msg: _emit_lines(emit, OutputStream.STDERR, msg),
        )
        error = getattr(execution, "error", None)
        if error:
            _emit_lines(emit, OutputStream.STDERR, format_execution_error(error))
            return 1
        return 0

    async def close(self) -> None:
        if self._sbx is not None:
            try:
                await self._sbx.kill()
            except Exception as e:
                log.warning(f"[engine] sandbox kill failed: {e}")
            self._sbx = None
