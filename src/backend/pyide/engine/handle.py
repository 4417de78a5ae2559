"""Lifecycle wrapper around one execution engine session."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from ..errors import EngineBusy, EngineError, EngineNotReady
from ..models import EngineState, ExecutionResult, OutputChunk

log = logging.getLogger(__name__)

Emit = Callable[[OutputChunk], None]


class EngineBackend(Protocol):
    """Runtime that actually hosts the interpreter.

    `start` returns a short banner (e.g. "Python 3.11") used in the ready
    message. `run` must call `emit` for each piece of output as soon as the
    program produces it and return the program's exit code.
    """

    async def start(self) -> str: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def reset(self) -> None: ...

    async def run(self, source: str, emit: Emit) -> Optional[int]: ...

    async def close(self) -> None: ...


_DONE = object()


class Execution:
    """Async iterator over the output of one running program."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.result: Optional[ExecutionResult] = None

    def __aiter__(self) -> "Execution":
        return self

    async def __anext__(self) -> OutputChunk:
        item = await self._queue.get()
        if item is _DONE:
            # Leave the sentinel for any other consumer.
            self._queue.put_nowait(_DONE)
            raise StopAsyncIteration
        return item

    async def wait(self) -> ExecutionResult:
        """Discard remaining output and return the result."""
        async for _ in self:
            pass
        if self.result is None:
            raise EngineError("execution finished without a result")
        return self.result


class EngineHandle:
    """
    State machine around an EngineBackend.

    uninitialized -> initializing -> ready <-> running, with a terminal
    failed state reached only when start-up fails. The session is never
    recreated. Requests made in any state other than ready are rejected
    immediately; nothing is queued.
    """

    def __init__(self, backend: EngineBackend):
        self.backend = backend
        self.state = EngineState.UNINITIALIZED
        self.banner: Optional[str] = None
        self.failure: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.state is EngineState.READY

    def _require_ready(self) -> None:
        if self.state is EngineState.READY:
            return
        if self.state is EngineState.RUNNING:
            raise EngineBusy("another execution is still running")
        if self.state is EngineState.FAILED:
            raise EngineNotReady(f"engine failed to initialize: {self.failure}")
        raise EngineNotReady("engine still loading, try again")

    async def initialize(self) -> str:
        if self.state is not EngineState.UNINITIALIZED:
            raise EngineError(f"engine session already initialized (state={self.state.value})")
        self.state = EngineState.INITIALIZING
        log.info(f"[engine] starting {type(self.backend).__name__}")
        try:
            banner = await self.backend.start()
        except Exception as e:
            self.state = EngineState.FAILED
            self.failure = str(e) or type(e).__name__
            log.error(f"[engine] start failed: {self.failure}")
            raise EngineError(f"engine failed to start: {self.failure}") from e
        self.banner = banner
        self.state = EngineState.READY
        log.info(f"[engine] ready: {banner}")
        return banner

    async def write_file(self, path: str, content: str) -> None:
        self._require_ready()
        await self.backend.write_file(path, content)

    async def reset(self) -> None:
        self._require_ready()
        await self.backend.reset()

    def execute(self, source: str) -> Execution:
        """Start running `source` and return its output stream.

        Must be called from a running event loop. The engine is marked
        running before this returns, so a second call made before the first
        execution finishes raises EngineBusy.
        """
        self._require_ready()
        self.state = EngineState.RUNNING
        execution = Execution()
        execution._task = asyncio.get_running_loop().create_task(self._drive(source, execution))
        return execution

    async def _drive(self, source: str, execution: Execution) -> None:
        try:
            exit_code = await self.backend.run(source, execution._queue.put_nowait)
            execution.result = ExecutionResult(exit_code=exit_code)
        except Exception as e:
            log.exception("[engine] backend failed during execution")
            execution.result = ExecutionResult(error=f"{type(e).__name__}: {e}")
        finally:
            if execution.result is None:
                execution.result = ExecutionResult(error="execution interrupted")
            self.state = EngineState.READY
            execution._queue.put_nowait(_DONE)

    async def close(self) -> None:
        if self.state in (EngineState.READY, EngineState.RUNNING):
            await self.backend.close()
