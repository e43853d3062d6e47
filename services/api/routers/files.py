# services/api/routers/files.py
"""
File registration: the minimal file-vault surface the version store needs.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response

from core.errors import VaultError, http_status_for
from schemas import FileOut
from routers.versions import read_upload, version_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


def get_services():
    from main import get_services as _get
    return _get()


@router.post("", response_model=FileOut, status_code=status.HTTP_201_CREATED)
async def register_file(
    file: UploadFile = File(...),
    uploaded_by_id: int = Form(..., alias="uploadedById"),
    project_id: Optional[int] = Form(None, alias="projectId"),
    folder_id: Optional[int] = Form(None, alias="folderId"),
    description: Optional[str] = Form(None),
    svc=Depends(get_services),
):
    """Upload a PDF as a new file; it becomes version 1."""
    try:
        content = await read_upload(file, svc.settings.max_version_bytes)
        record, first = svc.versions.register_file(
            name=file.filename or "document.pdf",
            content=content,
            uploader_id=uploaded_by_id,
            project_id=project_id,
            folder_id=folder_id,
            description=description,
        )
        return FileOut(**record.model_dump(), current_version=version_out(first, 0))
    except HTTPException:
        raise
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to register file: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to register file: {e}")


@router.get("/{file_id}", response_model=FileOut)
async def get_file(file_id: int, svc=Depends(get_services)):
    try:
        record = svc.versions.get_file(file_id)
        current = svc.versions.current_version(file_id)
        out = FileOut(**record.model_dump())
        if current is not None:
            counts = svc.versions.comment_counts(file_id)
            out.current_version = version_out(current, counts.get(current.id, 0))
        return out
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/{file_id}/content")
async def get_file_content(file_id: int, svc=Depends(get_services)):
    """Binary of the current version."""
    try:
        current = svc.versions.current_version(file_id)
        if current is None:
            raise HTTPException(status_code=404, detail=f"file {file_id} has no versions")
        data = svc.versions.read_content(current)
    except HTTPException:
        raise
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))

    return Response(
        content=data,
        media_type="application/pdf",
        headers={"X-Version-Number": str(current.version_number)},
    )
