"""
Pydantic schemas for API request/response validation.
"""
from .version import FileOut, VersionOut
from .annotation import (
    AnnotationCreate,
    AnnotationDeleted,
    AnnotationOut,
    AnnotationPatch,
    CommentedAnnotationOut,
)
from .task import PromotionOut, TaskCreate, TaskOut

# Re-export all
__all__ = [
    "FileOut",
    "VersionOut",
    "AnnotationCreate",
    "AnnotationDeleted",
    "AnnotationOut",
    "AnnotationPatch",
    "CommentedAnnotationOut",
    "PromotionOut",
    "TaskCreate",
    "TaskOut",
]
