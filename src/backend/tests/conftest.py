"""Shared test fixtures and configuration."""

import asyncio
import os
import sys
from typing import List, Optional, Tuple

import pytest

from pyide.console import ConsoleSink
from pyide.engine import EngineHandle, LocalInterpreterBackend
from pyide.models import OutputChunk, OutputStream
from pyide.prompts import StaticPrompter
from pyide.store import DurableStore
from pyide.workspace import Workspace


class FakeBackend:
    """In-memory engine backend that replays scripted output."""

    def __init__(self, outputs: Optional[List[Tuple[OutputStream, str]]] = None, fail_start: Optional[Exception] = None):
        self.outputs = outputs or []
        self.fail_start = fail_start
        self.files = {}
        self.writes: List[str] = []
        self.sources: List[str] = []
        self.resets = 0
        self.closed = False
        self.gate: Optional[asyncio.Event] = None
        self.fail_run: Optional[Exception] = None
        self.fail_write: Optional[Exception] = None

    async def start(self) -> str:
        if self.fail_start is not None:
            raise self.fail_start
        return "Python 3.test"

    async def write_file(self, path: str, content: str) -> None:
        if self.fail_write is not None:
            raise self.fail_write
        self.files[path] = content
        self.writes.append(path)

    async def reset(self) -> None:
        self.resets += 1

    async def run(self, source, emit):
        self.sources.append(source)
        for i, (stream, text) in enumerate(self.outputs):
            emit(OutputChunk(stream=stream, text=text))
            await asyncio.sleep(0)
            if i == 0 and self.gate is not None:
                await self.gate.wait()
        if self.fail_run is not None:
            raise self.fail_run
        return 0

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store(tmp_path):
    """Durable store backed by a temporary JSON file."""
    return DurableStore(tmp_path / "storage.json", key="testSlot")


@pytest.fixture
def fake_backend():
    return FakeBackend(outputs=[(OutputStream.STDOUT, "hello")])


@pytest.fixture
def prompter():
    return StaticPrompter()


@pytest.fixture
def workspace(store, fake_backend, prompter):
    """Workspace wired to the fake backend; the engine is not started."""
    return Workspace(store, EngineHandle(fake_backend), console=ConsoleSink(), prompter=prompter)


@pytest.fixture
def local_workspace(store, tmp_path):
    """Workspace running real programs with the current interpreter."""
    backend = LocalInterpreterBackend(python=sys.executable, root=tmp_path / "engine-fs")
    return Workspace(store, EngineHandle(backend), console=ConsoleSink(), prompter=StaticPrompter())


@pytest.fixture(autouse=True)
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "ENABLE_OPENTELEMETRY": "false",
        "E2B_API_KEY": "test-e2b-key",
        "PYIDE_ENGINE": "local",
        "OTEL_SERVICE_NAME": "test-service",
    }

    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    # Restore original values
    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value
