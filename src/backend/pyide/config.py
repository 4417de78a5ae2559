"""
Central configuration for the workspace backend.
Values come from environment variables (a .env file is loaded by main.py).
"""

from __future__ import annotations

import os
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# ---- Persistence ----
STORE_PATH = os.getenv("PYIDE_STORE_PATH", os.path.expanduser("~/.pyide/storage.json"))
STORE_KEY = os.getenv("PYIDE_STORE_KEY", "myPyFilesMaster")

# ---- Project ----
DEFAULT_FILE = os.getenv("PYIDE_DEFAULT_FILE", "main.py")
DEFAULT_CONTENT = (
    "# Master Python IDE\n"
    "\n"
    "# 1. Write some code\n"
    "# 2. Hit Run\n"
    "\n"
    'print("Ready to code.")'
)
NEW_FILE_CONTENT = "# New File"
AUTOSAVE_INTERVAL_S = float(os.getenv("PYIDE_AUTOSAVE_INTERVAL", "1.5"))

# ---- Engine ----
ENGINE_BACKEND = os.getenv("PYIDE_ENGINE", "local")  # local | e2b
PYTHON_EXECUTABLE = os.getenv("PYIDE_PYTHON")  # defaults to the running interpreter
E2B_SANDBOX_TIMEOUT_S = int(os.getenv("E2B_SANDBOX_TIMEOUT", "600"))  # 10 min

# ---- API ----
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))

# ---- Observability ----
ENABLE_OPENTELEMETRY = os.getenv("ENABLE_OPENTELEMETRY", "true").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class Settings(BaseModel):
    """Runtime settings for one workspace instance."""
    store_path: str = STORE_PATH
    store_key: str = Field(STORE_KEY, min_length=1)
    default_file: str = Field(DEFAULT_FILE, min_length=1)
    autosave_interval_s: float = Field(AUTOSAVE_INTERVAL_S, gt=0)
    engine_backend: str = ENGINE_BACKEND
    python_executable: Optional[str] = PYTHON_EXECUTABLE
    e2b_timeout_s: int = Field(E2B_SANDBOX_TIMEOUT_S, gt=0)
    cors_origins: List[str] = Field(default_factory=list)
    enable_tracing: bool = ENABLE_OPENTELEMETRY
    log_level: str = LOG_LEVEL

    @field_validator('engine_backend')
    @classmethod
    def engine_backend_must_be_known(cls, v):
        v = v.strip().lower()
        if v not in {"local", "e2b"}:
            raise ValueError(f"unknown engine backend: {v!r} (expected 'local' or 'e2b')")
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        """Re-read the environment so values set after import are honoured."""
        origins = os.getenv("CORS_ORIGINS", CORS_ORIGINS)
        return cls(
            store_path=os.getenv("PYIDE_STORE_PATH", STORE_PATH),
            store_key=os.getenv("PYIDE_STORE_KEY", STORE_KEY),
            default_file=os.getenv("PYIDE_DEFAULT_FILE", DEFAULT_FILE),
            autosave_interval_s=float(os.getenv("PYIDE_AUTOSAVE_INTERVAL", str(AUTOSAVE_INTERVAL_S))),
            engine_backend=os.getenv("PYIDE_ENGINE", ENGINE_BACKEND),
            python_executable=os.getenv("PYIDE_PYTHON", PYTHON_EXECUTABLE or "") or None,
            e2b_timeout_s=int(os.getenv("E2B_SANDBOX_TIMEOUT", str(E2B_SANDBOX_TIMEOUT_S))),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            enable_tracing=os.getenv("ENABLE_OPENTELEMETRY", "true").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", LOG_LEVEL),
        )
