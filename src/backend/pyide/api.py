"""HTTP surface for the workspace."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from . import __version__
from .config import Settings
from .errors import (
    DuplicateNameError,
    InvalidFileNameError,
    NotFoundError,
    ProjectError,
    ProtectedFileError,
)
from .models import ExportedFile, RunStatus
from .orchestrator import BUSY_MESSAGE, RunOrchestrator
from .prompts import StaticPrompter
from .telemetry import setup_tracer
from .workspace import Autosaver, Workspace

log = logging.getLogger(__name__)

# Most specific first: InvalidFileNameError is a DuplicateNameError.
_STATUS_FOR_ERROR = [
    (InvalidFileNameError, 422),
    (DuplicateNameError, 409),
    (ProtectedFileError, 403),
    (NotFoundError, 404),
]

# -----------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------

class ContentBody(BaseModel):
    content: str

class CreateFileBody(BaseModel):
    name: Optional[str] = None  # None means the user cancelled the prompt

class ImportFileBody(BaseModel):
    name: str
    content: str
    overwrite: bool = False  # answer to "Overwrite <name>?"

class ImportProjectBody(BaseModel):
    files: Dict[str, Any]
    confirm: bool = False

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _workspace(request: Request) -> Workspace:
    return request.app.state.workspace


def _orchestrator(request: Request) -> RunOrchestrator:
    return request.app.state.orchestrator


def _download(exported: ExportedFile) -> Response:
    disposition = f"attachment; filename*=UTF-8''{quote(exported.filename)}"
    return Response(
        content=exported.content.encode("utf-8"),
        media_type=exported.media_type,
        headers={"Content-Disposition": disposition},
    )


def _sse(event: str, payload: Dict[str, Any]) -> bytes:
    data = json.dumps(payload, ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n".encode("utf-8")


async def project_error_handler(request: Request, exc: ProjectError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_FOR_ERROR if isinstance(exc, cls)), 400)
    log.info(f"[api] rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse({"error": type(exc).__name__, "detail": str(exc)}, status_code=status)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse({"error": "ValueError", "detail": str(exc)}, status_code=422)

# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

router = APIRouter()


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/engine")
def engine_status(request: Request):
    engine = _workspace(request).engine
    return {"state": engine.state.value, "banner": engine.banner, "failure": engine.failure}


@router.get("/files")
def list_files(request: Request):
    return _workspace(request).listing().model_dump()


@router.get("/files/active")
def get_active(request: Request):
    ws = _workspace(request)
    return {"name": ws.project.active_file, "content": ws.editor.text}


@router.put("/files/active")
def edit_active(body: ContentBody, request: Request):
    """Replace the editor text; the autosaver or the next run persists it."""
    ws = _workspace(request)
    ws.edit(body.content)
    return {"name": ws.project.active_file}


@router.post("/files", status_code=201)
def create_file(body: CreateFileBody, request: Request):
    ws = _workspace(request)
    name = ws.create_file(prompter=StaticPrompter(names=[body.name]))
    if name is None:
        return JSONResponse({"created": False}, status_code=200)
    return {"created": True, **ws.listing().model_dump()}


@router.post("/files/{name}/open")
def open_file(name: str, request: Request):
    ws = _workspace(request)
    ws.open_file(name)
    return {"name": name, "content": ws.editor.text}


@router.delete("/files/{name}")
def delete_file(name: str, request: Request, confirm: bool = False):
    ws = _workspace(request)
    deleted = ws.delete_file(name, prompter=StaticPrompter(confirm=confirm))
    return {"deleted": deleted, **ws.listing().model_dump()}


@router.get("/console")
def read_console(request: Request, since: int = 0):
    entries = _workspace(request).console.since(since)
    return {"entries": [e.model_dump(mode="json") for e in entries]}


@router.post("/run")
async def run(request: Request, stream: bool = False):
    """
    Run the active file.
    - Returns the run report plus the console entries it produced.
    - If stream=true, returns Server-Sent Events: one `entry` event per
      console line as it is appended, then a final `result` event.
    - A run requested while another is in progress leaves the console
      untouched; without stream=true it gets 409.
    """
    ws = _workspace(request)
    orchestrator = _orchestrator(request)

    if stream:
        async def sse() -> AsyncGenerator[bytes, None]:
            queue: asyncio.Queue = asyncio.Queue()
            unsubscribe = ws.console.subscribe(queue.put_nowait)
            task = asyncio.create_task(orchestrator.run())
            task.add_done_callback(lambda _: queue.put_nowait(None))
            try:
                while True:
                    entry = await queue.get()
                    if entry is None:
                        break
                    yield _sse("entry", entry.model_dump(mode="json"))
                yield _sse("result", task.result().model_dump(mode="json"))
            finally:
                unsubscribe()
        return StreamingResponse(sse(), media_type="text/event-stream")

    report = await orchestrator.run()
    if report.status is RunStatus.BUSY:
        return JSONResponse(
            {"report": report.model_dump(mode="json"), "detail": BUSY_MESSAGE},
            status_code=409,
        )
    entries = ws.console.since(report.first_entry)[: report.next_entry - report.first_entry]
    return {
        "report": report.model_dump(mode="json"),
        "entries": [e.model_dump(mode="json") for e in entries],
    }


@router.get("/export/active")
def export_active(request: Request):
    return _download(_workspace(request).export_active_file())


@router.get("/export/project")
def export_project(request: Request):
    return _download(_workspace(request).export_project())


@router.post("/import")
def import_file(body: ImportFileBody, request: Request):
    ws = _workspace(request)
    imported = ws.import_file(body.name, body.content, prompter=StaticPrompter(confirm=body.overwrite))
    if not imported:
        return JSONResponse({"imported": False, "reason": "overwrite_not_confirmed"}, status_code=409)
    return {"imported": True, **ws.listing().model_dump()}


@router.post("/import/project")
def import_project(body: ImportProjectBody, request: Request):
    ws = _workspace(request)
    imported = ws.import_project(body.files, prompter=StaticPrompter(confirm=body.confirm))
    if not imported:
        return JSONResponse({"imported": False, "reason": "replace_not_confirmed"}, status_code=409)
    return {"imported": True, **ws.listing().model_dump()}

# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None, workspace: Optional[Workspace] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ws: Workspace = app.state.workspace
        init_task = asyncio.create_task(ws.start_engine())
        autosaver = Autosaver(ws, settings.autosave_interval_s)
        autosaver.start()
        app.state.autosaver = autosaver
        try:
            yield
        finally:
            await autosaver.stop()
            if not init_task.done():
                init_task.cancel()
            await asyncio.gather(init_task, return_exceptions=True)
            await ws.close()

    app = FastAPI(title="Python Workspace API", version=__version__, lifespan=lifespan)
    app.state.workspace = workspace or Workspace.from_settings(settings)
    app.state.orchestrator = RunOrchestrator(app.state.workspace)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ProjectError, project_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.include_router(router)

    if settings.enable_tracing:
        setup_tracer(service_name="pyide-backend", app=app)

    return app
