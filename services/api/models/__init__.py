from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.status import AnnotationStatus, DEFAULT_STATUS


class DomainModel(BaseModel):
    """camelCase on the wire, snake_case in Python; accepts both on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Rect(DomainModel):
    """Marker position in unscaled page coordinates plus its 1-based page."""
    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    page_number: int = Field(..., ge=1)


class FileRecord(DomainModel):
    """
    Domain model for an uploaded file (owned by the file-vault collaborator).
    Only the fields the version store needs are kept here.
    """
    id: int
    name: str
    project_id: Optional[int] = None
    folder_id: Optional[int] = None
    uploaded_by_id: int
    file_path: str
    uploaded_at: datetime


class PdfVersion(DomainModel):
    """
    Immutable snapshot of a file's binary content.

    `version_number` is contiguous per file starting at 1; the highest one
    is the current version.
    """
    id: int
    file_id: int
    version_number: int = Field(..., ge=1)
    file_path: str
    description: Optional[str] = None
    uploaded_at: datetime
    uploaded_by_id: int
    metadata: Optional[Dict[str, Any]] = None


class PdfAnnotation(DomainModel):
    """
    Positioned, commented marker on one page of one version.

    `color` starts as the canonical colour of `status` but is stored
    independently. `task_id` is a best-effort link and may outlive its task.
    """
    id: int
    pdf_version_id: int
    project_id: Optional[int] = None
    rect: Rect
    color: str
    comment: str = ""
    status: AnnotationStatus = DEFAULT_STATUS
    created_at: datetime
    created_by_id: int
    assigned_to: Optional[str] = None
    task_id: Optional[int] = None
    deadline: Optional[date] = None


class Task(DomainModel):
    """Task record of the external task collaborator (minimal view)."""
    id: int
    title: str
    description: str = ""
    project_id: Optional[int] = None
    source_annotation_id: Optional[int] = None
    assigned_to: Optional[str] = None
    deadline: Optional[date] = None
    created_at: datetime


__all__ = [
    "DomainModel",
    "Rect",
    "FileRecord",
    "PdfVersion",
    "PdfAnnotation",
    "Task",
]
