"""
Pydantic schemas for annotations with strict validation.
Ensures data integrity and prevents corrupt rectangles.
"""
from datetime import date
from typing import Any, Dict, Optional, Union

from pydantic import Field

from models import DomainModel, PdfAnnotation, Rect


class AnnotationCreate(DomainModel):
    """
    Schema for creating an annotation.

    taskId may arrive as "17"; deadline as an ISO string. Both are coerced
    by the store, so they are accepted loosely here.
    """
    pdf_version_id: int = Field(..., ge=1, description="Owning PDF version")
    project_id: Optional[int] = Field(None, description="Owning project (filtering only)")
    rect: Rect
    color: Optional[str] = Field(None, max_length=32, description="Overrides the status colour")
    comment: str = Field("", max_length=10_000)
    status: Optional[str] = Field(None, description="Defaults to new_comment")
    created_by_id: int = Field(..., description="Author user id")
    assigned_to: Optional[str] = Field(None, max_length=200)
    task_id: Optional[Union[int, str]] = None
    deadline: Optional[Union[date, str]] = None

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=False)


class AnnotationPatch(DomainModel):
    """Partial update; only fields explicitly sent are applied."""
    rect: Optional[Rect] = None
    color: Optional[str] = Field(None, max_length=32)
    comment: Optional[str] = Field(None, max_length=10_000)
    status: Optional[str] = None
    assigned_to: Optional[str] = Field(None, max_length=200)
    task_id: Optional[Union[int, str]] = None
    deadline: Optional[Union[date, str]] = None

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class AnnotationOut(PdfAnnotation):
    """Annotation as returned by the API (same shape as the domain model)."""


class AnnotationDeleted(DomainModel):
    success: bool = True
    version_id: int


class CommentedAnnotationOut(AnnotationOut):
    """Vault-wide comment listing row."""
    file_id: Optional[int] = None
    file_name: Optional[str] = None
    version_number: Optional[int] = None

