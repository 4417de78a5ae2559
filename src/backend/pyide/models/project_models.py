"""Project listing and export models."""

from typing import List

from pydantic import BaseModel, Field, field_validator

PROJECT_BACKUP_FILENAME = "python_project_backup.json"


class ProjectListing(BaseModel):
    """File names in display order plus the active and protected files."""
    files: List[str] = Field(default_factory=list)
    active_file: str
    default_file: str

    @field_validator('files')
    @classmethod
    def files_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('a project always has at least one file')
        return v


class ExportedFile(BaseModel):
    """A downloadable document produced by an export."""
    filename: str = Field(..., min_length=1)
    content: str
    media_type: str = "text/plain"
