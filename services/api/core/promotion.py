# services/api/core/promotion.py
"""
Promotion Bridge: turn an annotation into a task of the task collaborator
and link the task back onto the annotation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from adapters.base import StorageAdapter
from core.annotations import AnnotationStore
from core.errors import AlreadyPromoted, OrphanedLink
from models import PdfAnnotation, Task
from models.converters import task_from_row

logger = logging.getLogger(__name__)

TITLE_MAX_LEN = 80


class TaskService(Protocol):
    """The part of the task collaborator the bridge depends on."""

    def create_task(
        self,
        *,
        title: str,
        description: str,
        source_annotation_id: int,
        project_id: Optional[int] = None,
        assigned_to: Optional[str] = None,
        deadline: Optional[date] = None,
    ) -> Task:
        ...

    def get_task(self, task_id: int) -> Optional[Task]:
        ...


class StorageTaskService:
    """Task collaborator backed by the same storage adapter as the vault."""

    def __init__(self, storage: StorageAdapter) -> None:
        self.storage = storage

    def create_task(
        self,
        *,
        title: str,
        description: str,
        source_annotation_id: int,
        project_id: Optional[int] = None,
        assigned_to: Optional[str] = None,
        deadline: Optional[date] = None,
    ) -> Task:
        row = self.storage.create_task(
            {
                "title": title,
                "description": description,
                "source_annotation_id": source_annotation_id,
                "project_id": project_id,
                "assigned_to": assigned_to,
                "deadline": deadline,
            }
        )
        return task_from_row(row)

    def get_task(self, task_id: int) -> Optional[Task]:
        row = self.storage.get_task(task_id)
        return task_from_row(row) if row else None


@dataclass
class PromotionResult:
    task: Task
    annotation: PdfAnnotation
    linked: bool


def task_title(annotation: PdfAnnotation) -> str:
    first_line = (annotation.comment or "").strip().splitlines()[0:1]
    title = first_line[0].strip() if first_line else ""
    if not title:
        return f"Annotation on page {annotation.rect.page_number}"
    if len(title) > TITLE_MAX_LEN:
        title = title[: TITLE_MAX_LEN - 3].rstrip() + "..."
    return title


def task_description(annotation: PdfAnnotation) -> str:
    body = (annotation.comment or "").strip()
    ref = (
        f"Source: annotation #{annotation.id}, page {annotation.rect.page_number} "
        f"(PDF version {annotation.pdf_version_id})"
    )
    return f"{body}\n\n{ref}" if body else ref


class PromotionBridge:
    def __init__(self, annotations: AnnotationStore, tasks: TaskService) -> None:
        self.annotations = annotations
        self.tasks = tasks

    def promote_to_task(self, annotation_id: int) -> PromotionResult:
        """
        Create a task seeded from the annotation and link it back.

        - task creation failure aborts everything (annotation untouched)
        - link write failure leaves an orphaned task; logged, not retried
        """
        annotation = self.annotations.get_annotation(annotation_id)

        if annotation.task_id is not None and self.tasks.get_task(annotation.task_id) is not None:
            raise AlreadyPromoted(annotation_id, annotation.task_id)

        task = self.tasks.create_task(
            title=task_title(annotation),
            description=task_description(annotation),
            source_annotation_id=annotation.id,
            project_id=annotation.project_id,
            assigned_to=annotation.assigned_to,
            deadline=annotation.deadline,
        )

        try:
            linked = self.annotations.update_annotation(annotation_id, {"taskId": task.id})
        except Exception as e:
            orphan = OrphanedLink(annotation_id, task.id)
            logger.error(f"{orphan}: {e}")
            return PromotionResult(task=task, annotation=annotation, linked=False)

        logger.info(f"Promoted annotation {annotation_id} to task {task.id}")
        return PromotionResult(task=task, annotation=linked, linked=True)
