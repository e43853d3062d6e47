# services/api/routers/annotations.py
"""
Annotation endpoints: CRUD per version, vault-wide comment listing,
the assigned-to-me feed and promotion to a task.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from core.errors import VaultError, http_status_for
from schemas import (
    AnnotationCreate,
    AnnotationDeleted,
    AnnotationOut,
    AnnotationPatch,
    CommentedAnnotationOut,
    PromotionOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["annotations"])


def get_services():
    from main import get_services as _get
    return _get()


def _raise_http(e: Exception, action: str):
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, VaultError):
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
    if isinstance(e, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"Failed to {action}: {e}")
    raise HTTPException(status_code=500, detail=f"Failed to {action}: {e}")


# ---------- per-version ----------

@router.get("/pdf/versions/{version_id}/annotations", response_model=List[AnnotationOut])
async def list_annotations(
    version_id: int,
    project_id: Optional[int] = Query(None, alias="projectId"),
    svc=Depends(get_services),
):
    try:
        return svc.annotations.list_annotations(version_id, project_id=project_id)
    except Exception as e:
        _raise_http(e, f"list annotations of version {version_id}")


@router.post("/pdf/annotations", response_model=AnnotationOut, status_code=status.HTTP_201_CREATED)
async def create_annotation(body: AnnotationCreate, svc=Depends(get_services)):
    try:
        return svc.annotations.create_annotation(body.to_store())
    except Exception as e:
        _raise_http(e, "create annotation")


# ---------- vault-wide ----------

@router.get("/pdf/annotations", response_model=List[CommentedAnnotationOut])
async def list_commented_annotations(
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = Query(None, description="Free text matched against comment and file name"),
    project_id: Optional[int] = Query(None, alias="projectId"),
    svc=Depends(get_services),
):
    """Every annotation with a comment, across all files."""
    try:
        rows = svc.annotations.list_commented(status=status_filter, query=q, project_id=project_id)
    except Exception as e:
        _raise_http(e, "list annotations")
    return [
        CommentedAnnotationOut(
            **r["annotation"].model_dump(),
            file_id=r["file_id"],
            file_name=r["file_name"],
            version_number=r["version_number"],
        )
        for r in rows
    ]


@router.get("/pdf-annotations/assigned", response_model=List[AnnotationOut])
async def list_assigned_annotations(
    assigned_to: str = Query(..., alias="assignedTo", min_length=1),
    svc=Depends(get_services),
):
    """Unresolved annotations assigned to one person."""
    return svc.annotations.list_assigned(assigned_to)


# ---------- single annotation ----------

@router.get("/pdf/annotations/{annotation_id}", response_model=AnnotationOut)
async def get_annotation(annotation_id: int, svc=Depends(get_services)):
    try:
        return svc.annotations.get_annotation(annotation_id)
    except Exception as e:
        _raise_http(e, f"get annotation {annotation_id}")


@router.patch("/pdf/annotations/{annotation_id}", response_model=AnnotationOut)
async def update_annotation(annotation_id: int, body: AnnotationPatch, svc=Depends(get_services)):
    """Only fields present in the body are changed; explicit nulls clear."""
    try:
        return svc.annotations.update_annotation(annotation_id, body.to_store())
    except Exception as e:
        _raise_http(e, f"update annotation {annotation_id}")


@router.delete("/pdf/annotations/{annotation_id}", response_model=AnnotationDeleted)
async def delete_annotation(annotation_id: int, svc=Depends(get_services)):
    try:
        result = svc.annotations.delete_annotation(annotation_id)
    except Exception as e:
        _raise_http(e, f"delete annotation {annotation_id}")
    return AnnotationDeleted(success=True, version_id=result["versionId"])


@router.post("/pdf/annotations/{annotation_id}/promote", response_model=PromotionOut)
async def promote_annotation(annotation_id: int, svc=Depends(get_services)):
    """Create a task from the annotation and link it back."""
    try:
        result = svc.promotion.promote_to_task(annotation_id)
    except Exception as e:
        _raise_http(e, f"promote annotation {annotation_id}")
    return PromotionOut(
        task=result.task.model_dump(),
        annotation=result.annotation.model_dump(),
        linked=result.linked,
    )
