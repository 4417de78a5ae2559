"""Console log models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ConsoleKind(str, Enum):
    """How a console line is rendered."""
    NORMAL = "normal"
    ERROR = "error"
    SYSTEM = "system"


class ConsoleEntry(BaseModel):
    """One line of the console log. Immutable once appended."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    text: str
    kind: ConsoleKind = ConsoleKind.NORMAL
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
