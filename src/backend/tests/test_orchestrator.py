"""Tests for the run orchestrator."""

import asyncio

import pytest

from pyide.models import ConsoleKind, EngineState, OutputStream, RunStatus
from pyide.orchestrator import (
    BUSY_MESSAGE,
    LOADING_MESSAGE,
    RUN_MESSAGE,
    SYNC_MESSAGE,
    RunOrchestrator,
)
from pyide.prompts import StaticPrompter
from pyide.workspace import View

from conftest import FakeBackend


def produced(workspace, report):
    """(kind, text) pairs appended by one run."""
    entries = workspace.console.since(report.first_entry)[: report.next_entry - report.first_entry]
    return [(e.kind, e.text) for e in entries]


def run_once(workspace, start_engine=True):
    async def scenario():
        if start_engine:
            await workspace.start_engine()
        return await RunOrchestrator(workspace).run()

    return asyncio.run(scenario())


class TestRunScenario:
    """End-to-end runs with the real local interpreter."""

    def test_print_one(self, local_workspace):
        local_workspace.project.replace_all({"main.py": "print(1)"})
        local_workspace.editor.load("print(1)")

        report = run_once(local_workspace)

        assert report.status is RunStatus.COMPLETED
        assert produced(local_workspace, report) == [
            (ConsoleKind.SYSTEM, SYNC_MESSAGE),
            (ConsoleKind.SYSTEM, RUN_MESSAGE.format(name="main.py")),
            (ConsoleKind.NORMAL, "1"),
        ]
        assert report.result.exit_code == 0

    def test_user_error_is_output_not_crash(self, local_workspace):
        local_workspace.edit("print('before')\n1 / 0\n")

        async def scenario():
            await local_workspace.start_engine()
            orchestrator = RunOrchestrator(local_workspace)
            failed = await orchestrator.run()
            local_workspace.edit("print('after')")
            recovered = await orchestrator.run()
            return failed, recovered

        failed, recovered = asyncio.run(scenario())

        assert failed.status is RunStatus.COMPLETED
        lines = produced(local_workspace, failed)
        assert (ConsoleKind.NORMAL, "before") in lines
        assert (ConsoleKind.ERROR, "ZeroDivisionError: division by zero") in lines
        assert failed.result.exit_code == 1

        assert recovered.status is RunStatus.COMPLETED
        assert produced(local_workspace, recovered)[-1] == (ConsoleKind.NORMAL, "after")
        assert local_workspace.engine.state is EngineState.READY

    def test_active_file_imports_other_project_file(self, local_workspace):
        local_workspace.import_file("helper.py", "def greet():\n    return 'hi from helper'\n")
        local_workspace.open_file("main.py")
        local_workspace.edit("import helper\nprint(helper.greet())")

        report = run_once(local_workspace)
        assert produced(local_workspace, report)[-1] == (ConsoleKind.NORMAL, "hi from helper")

    def test_edited_module_is_reimported_next_run(self, local_workspace):
        local_workspace.import_file("helper.py", "VALUE = 1")
        local_workspace.open_file("main.py")
        local_workspace.edit("import helper\nprint(helper.VALUE)")

        async def scenario():
            await local_workspace.start_engine()
            orchestrator = RunOrchestrator(local_workspace)
            first = await orchestrator.run()
            local_workspace.open_file("helper.py")
            local_workspace.edit("VALUE = 2")
            local_workspace.open_file("main.py")
            second = await orchestrator.run()
            return first, second

        first, second = asyncio.run(scenario())
        assert produced(local_workspace, first)[-1] == (ConsoleKind.NORMAL, "1")
        assert produced(local_workspace, second)[-1] == (ConsoleKind.NORMAL, "2")


class TestEngineNotReady:
    """Runs requested before the engine is usable."""

    def test_uninitialized_engine(self, workspace, fake_backend):
        report = run_once(workspace, start_engine=False)

        assert report.status is RunStatus.ENGINE_NOT_READY
        assert produced(workspace, report) == [(ConsoleKind.SYSTEM, LOADING_MESSAGE)]
        assert fake_backend.writes == []
        assert fake_backend.sources == []

    def test_initializing_engine(self, workspace, fake_backend):
        workspace.engine.state = EngineState.INITIALIZING
        report = run_once(workspace, start_engine=False)

        assert report.status is RunStatus.ENGINE_NOT_READY
        assert len(produced(workspace, report)) == 1
        assert fake_backend.writes == []

    def test_no_retry_when_engine_becomes_ready(self, workspace, fake_backend):
        async def scenario():
            report = await RunOrchestrator(workspace).run()
            await workspace.start_engine()
            await asyncio.sleep(0)
            return report

        report = asyncio.run(scenario())
        assert report.status is RunStatus.ENGINE_NOT_READY
        assert fake_backend.sources == []

    def test_failed_engine(self, store, prompter):
        from pyide.engine import EngineHandle
        from pyide.workspace import Workspace

        backend = FakeBackend(fail_start=RuntimeError("interpreter download failed"))
        ws = Workspace(store, EngineHandle(backend), prompter=prompter)

        report = run_once(ws)

        assert report.status is RunStatus.ENGINE_FAILED
        kinds = [e.kind for e in ws.console.entries]
        # start-up failure, then the rejected run
        assert kinds == [ConsoleKind.ERROR, ConsoleKind.SYSTEM]
        assert "interpreter download failed" in ws.console.entries[0].text
        assert backend.writes == []


class TestRunSteps:
    """Ordering and side effects of each run step."""

    def test_flushes_editor_before_run(self, workspace, fake_backend, store):
        workspace.edit("print('latest')")
        run_once(workspace)

        assert fake_backend.sources == ["print('latest')"]
        assert store.load()["main.py"] == "print('latest')"

    def test_switches_to_console_before_output(self, workspace):
        seen = []
        workspace.on_view_change(lambda view: seen.append((view, len(workspace.console))))

        async def scenario():
            await workspace.start_engine()
            before = len(workspace.console)
            report = await RunOrchestrator(workspace).run()
            return before, report

        before, report = asyncio.run(scenario())
        assert workspace.view is View.CONSOLE
        assert seen == [(View.CONSOLE, before)]

    def test_syncs_every_file(self, workspace, fake_backend):
        workspace.import_file("a.py", "A")
        workspace.import_file("b.txt", "B")
        workspace.open_file("main.py")

        report = run_once(workspace)

        assert report.files_synced == 3
        assert fake_backend.files == {"main.py": workspace.project.get("main.py"), "a.py": "A", "b.txt": "B"}
        assert fake_backend.resets == 1

    def test_runs_active_file(self, workspace, fake_backend):
        workspace.import_file("other.py", "print('other')")
        run_once(workspace)
        assert fake_backend.sources == ["print('other')"]
        assert any(e.text == RUN_MESSAGE.format(name="other.py") for e in workspace.console.entries)

    def test_stderr_chunks_are_error_entries(self, store, prompter):
        from pyide.engine import EngineHandle
        from pyide.workspace import Workspace

        backend = FakeBackend(outputs=[
            (OutputStream.STDOUT, "out 1"),
            (OutputStream.STDERR, "err 1"),
            (OutputStream.STDOUT, "out 2"),
        ])
        ws = Workspace(store, EngineHandle(backend), prompter=prompter)
        report = run_once(ws)
        assert produced(ws, report)[2:] == [
            (ConsoleKind.NORMAL, "out 1"),
            (ConsoleKind.ERROR, "err 1"),
            (ConsoleKind.NORMAL, "out 2"),
        ]

    def test_stale_files_are_not_removed(self, workspace, fake_backend):
        """Files deleted from the project stay in the engine filesystem across runs."""
        workspace.import_file("old.py", "STALE = True")

        async def scenario():
            await workspace.start_engine()
            orchestrator = RunOrchestrator(workspace)
            await orchestrator.run()
            workspace.delete_file("old.py", prompter=StaticPrompter(confirm=True))
            return await orchestrator.run()

        report = asyncio.run(scenario())
        assert "old.py" not in workspace.project
        assert fake_backend.files["old.py"] == "STALE = True"
        assert report.files_synced == 1

    def test_write_failure_is_routed_to_console(self, workspace, fake_backend):
        fake_backend.fail_write = OSError("disk full")

        async def scenario():
            await workspace.start_engine()
            orchestrator = RunOrchestrator(workspace)
            failed = await orchestrator.run()
            fake_backend.fail_write = None
            ok = await orchestrator.run()
            return failed, ok

        failed, ok = asyncio.run(scenario())
        assert failed.status is RunStatus.COMPLETED
        assert produced(workspace, failed)[-1] == (ConsoleKind.ERROR, "disk full")
        assert failed.result.error == "disk full"
        assert ok.result.exit_code == 0

    def test_backend_fault_during_execution(self, workspace, fake_backend):
        fake_backend.fail_run = ConnectionError("lost")
        report = run_once(workspace)
        assert produced(workspace, report)[-1] == (ConsoleKind.ERROR, "ConnectionError: lost")
        assert workspace.engine.state is EngineState.READY


class TestConcurrency:
    """At most one execution at a time; output never interleaves."""

    def test_second_run_while_first_in_flight_is_rejected(self, workspace, fake_backend):
        fake_backend.outputs = [(OutputStream.STDOUT, "first-a"), (OutputStream.STDOUT, "first-b")]

        async def scenario():
            await workspace.start_engine()
            orchestrator = RunOrchestrator(workspace)
            fake_backend.gate = asyncio.Event()
            first = asyncio.create_task(orchestrator.run())
            while not any(e.text == "first-a" for e in workspace.console.entries):
                await asyncio.sleep(0)
            second = await orchestrator.run()
            fake_backend.gate.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert second.status is RunStatus.BUSY
        assert first.status is RunStatus.COMPLETED
        texts = [e.text for e in workspace.console.entries]
        assert BUSY_MESSAGE not in texts
        assert texts.index("first-b") == texts.index("first-a") + 1
        assert second.first_entry == second.next_entry
        assert fake_backend.sources == [workspace.project.get("main.py")]

    def test_runs_in_sequence_both_complete(self, workspace, fake_backend):
        async def scenario():
            await workspace.start_engine()
            orchestrator = RunOrchestrator(workspace)
            return [await orchestrator.run(), await orchestrator.run()]

        reports = asyncio.run(scenario())
        assert [r.status for r in reports] == [RunStatus.COMPLETED, RunStatus.COMPLETED]
        assert len(fake_backend.sources) == 2

    def test_explicit_flush_wins_over_earlier_autosave(self, workspace, store):
        """The pre-run flush persists the newest editor text; a later periodic save cannot regress it."""
        workspace.edit("v1")
        autosave_seq = workspace.save()
        workspace.edit("v2")

        report = run_once(workspace)

        assert report.status is RunStatus.COMPLETED
        assert store.last_saved_seq > autosave_seq
        assert store.load()["main.py"] == "v2"

        workspace.save()
        assert store.load()["main.py"] == "v2"
