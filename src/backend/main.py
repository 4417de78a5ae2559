# backend/main.py
from __future__ import annotations

# Load .env early (no-op if missing)
from dotenv import load_dotenv

load_dotenv()

from pyide.api import create_app
from pyide.config import API_HOST, API_PORT, LOG_LEVEL
from pyide.telemetry import configure_logging

configure_logging(LOG_LEVEL)

app = create_app()

# -----------------------------------------------------------------------------
# Optional: local dev entrypoint (uvicorn)
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=API_HOST, port=API_PORT, reload=True)
