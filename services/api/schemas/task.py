"""
Pydantic schemas for the task collaborator and annotation promotion.
"""
from datetime import date
from typing import Optional

from pydantic import Field

from models import DomainModel, Task
from .annotation import AnnotationOut


class TaskCreate(DomainModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=10_000)
    project_id: Optional[int] = None
    source_annotation_id: int = Field(..., ge=1)
    assigned_to: Optional[str] = Field(None, max_length=200)
    deadline: Optional[date] = None


class TaskOut(Task):
    """Task as returned by the API."""


class PromotionOut(DomainModel):
    task: TaskOut
    annotation: AnnotationOut
    linked: bool = Field(..., description="False when the task exists but the back-link failed")
