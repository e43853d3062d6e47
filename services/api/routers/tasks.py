# services/api/routers/tasks.py
"""
Minimal task collaborator endpoints. Promotion is the usual way tasks
are created; POST /tasks exists for callers that seed tasks directly.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from schemas import TaskCreate, TaskOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def get_services():
    from main import get_services as _get
    return _get()


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(body: TaskCreate, svc=Depends(get_services)):
    try:
        return svc.tasks.create_task(
            title=body.title,
            description=body.description,
            source_annotation_id=body.source_annotation_id,
            project_id=body.project_id,
            assigned_to=body.assigned_to,
            deadline=body.deadline,
        )
    except Exception as e:
        logger.error(f"Failed to create task: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create task: {e}")


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: int, svc=Depends(get_services)):
    task = svc.tasks.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"task {task_id} not found")
    return task
