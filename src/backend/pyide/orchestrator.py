"""Run orchestration: flush, sync the engine filesystem, execute, stream output."""

from __future__ import annotations

import logging
from typing import Optional

from opentelemetry import trace

from .models import (
    ConsoleKind,
    EngineState,
    ExecutionResult,
    OutputStream,
    RunReport,
    RunStatus,
)
from .telemetry import (
    get_tracer,
    handle_span_error,
    handle_span_success,
    set_run_span_attributes,
)
from .workspace import View, Workspace

log = logging.getLogger(__name__)

LOADING_MESSAGE = ">> Loading engine... try again in a moment."
UNAVAILABLE_MESSAGE = ">> Engine unavailable: {reason}"
BUSY_MESSAGE = ">> A run is already in progress."
SYNC_MESSAGE = ">> Syncing files..."
RUN_MESSAGE = ">> Running {name}..."

KIND_FOR_STREAM = {
    OutputStream.STDOUT: ConsoleKind.NORMAL,
    OutputStream.STDERR: ConsoleKind.ERROR,
}


class RunOrchestrator:
    """
    Runs the active file of a workspace.

    A run is: flush the editor and persist, switch to the console, check the
    engine, write every project file into the engine filesystem, reset the
    interpreter, execute the active file and append its output in arrival
    order. Files deleted from the project since an earlier run stay in the
    engine filesystem; only the project's current files are (re)written.
    """

    def __init__(self, workspace: Workspace, tracer: Optional[trace.Tracer] = None):
        self.workspace = workspace
        self.tracer = tracer or get_tracer()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> RunReport:
        ws = self.workspace
        console = ws.console
        first_entry = len(console)

        ws.save()
        ws.show(View.CONSOLE)
        active = ws.project.active_file

        def report(status: RunStatus, **kwargs) -> RunReport:
            return RunReport(status=status, active_file=active, first_entry=first_entry,
                             next_entry=len(console), **kwargs)

        engine = ws.engine
        if self._running or engine.state is EngineState.RUNNING:
            # Nothing goes to the console while another run is streaming output.
            log.info(f"[run] rejected run of {active}: {BUSY_MESSAGE}")
            return report(RunStatus.BUSY)
        if engine.state is EngineState.FAILED:
            console.system(UNAVAILABLE_MESSAGE.format(reason=engine.failure))
            return report(RunStatus.ENGINE_FAILED)
        if not engine.is_ready:
            console.system(LOADING_MESSAGE)
            return report(RunStatus.ENGINE_NOT_READY)

        self._running = True
        try:
            return await self._execute(active, report)
        finally:
            self._running = False

    async def _execute(self, active: str, report) -> RunReport:
        ws = self.workspace
        console = ws.console
        engine = ws.engine
        snapshot = ws.project.snapshot()
        synced = 0
        result: Optional[ExecutionResult] = None

        with self.tracer.start_as_current_span("workspace.run") as span:
            set_run_span_attributes(span, active, len(snapshot), type(engine.backend).__name__, engine.state.value)
            try:
                console.system(SYNC_MESSAGE)
                for name, content in snapshot.items():
                    await engine.write_file(name, content)
                    synced += 1

                console.system(RUN_MESSAGE.format(name=active))
                await engine.reset()
                execution = engine.execute(snapshot[active])
                async for chunk in execution:
                    console.append(chunk.text, KIND_FOR_STREAM[chunk.stream])

                result = execution.result
                if result is not None and result.error:
                    console.error(result.error)
                handle_span_success(span, RunStatus.COMPLETED.value, result.exit_code if result else None)
            except Exception as e:
                log.exception(f"[run] run of {active} failed")
                handle_span_error(span, e)
                message = str(e) or type(e).__name__
                console.error(message)
                result = ExecutionResult(error=message)

        log.info(f"[run] {active}: synced={synced} exit_code={result.exit_code if result else None}")
        return report(RunStatus.COMPLETED, files_synced=synced, result=result)
