# services/api/routers/versions.py
"""
Version endpoints: list, read and create immutable PDF versions.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response

from core.errors import VaultError, http_status_for
from models import PdfVersion
from schemas import VersionOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pdf", tags=["versions"])


def get_services():
    from main import get_services as _get
    return _get()


# ---------- helpers ----------

def version_out(version: PdfVersion, comment_count: int = 0) -> VersionOut:
    return VersionOut(
        **version.model_dump(),
        file_url=f"/pdf/versions/{version.id}/content",
        comment_count=comment_count,
    )


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="EMPTY_PDF_BYTES")
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"PDF is {len(content)} bytes; limit is {max_bytes}",
        )
    return content


# ---------- endpoints ----------

@router.get("/files/{file_id}/versions", response_model=List[VersionOut])
async def list_versions(file_id: int, svc=Depends(get_services)):
    """All versions of a file, oldest first, each with its annotation count."""
    try:
        versions = svc.versions.list_versions(file_id)
        counts = svc.versions.comment_counts(file_id)
        return [version_out(v, counts.get(v.id, 0)) for v in versions]
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/files/{file_id}/versions/current", response_model=VersionOut)
async def current_version(file_id: int, svc=Depends(get_services)):
    try:
        current = svc.versions.current_version(file_id)
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
    if current is None:
        raise HTTPException(status_code=404, detail=f"file {file_id} has no versions")
    counts = svc.versions.comment_counts(file_id)
    return version_out(current, counts.get(current.id, 0))


@router.post("/files/{file_id}/versions", response_model=VersionOut, status_code=status.HTTP_201_CREATED)
async def create_version(
    file_id: int,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    uploaded_by_id: int = Form(..., alias="uploadedById"),
    svc=Depends(get_services),
):
    """Upload new content for an existing file as its next version."""
    try:
        content = await read_upload(file, svc.settings.max_version_bytes)
        metadata = {"originalFilename": file.filename} if file.filename else None
        version = svc.versions.create_version(
            file_id, content, description, uploaded_by_id, metadata=metadata
        )
        return version_out(version, 0)
    except HTTPException:
        raise
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create version for file {file_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create version: {e}")


@router.get("/versions/{version_id}", response_model=VersionOut)
async def get_version(version_id: int, svc=Depends(get_services)):
    version = svc.versions.get_version(version_id)
    if version is None:
        raise HTTPException(status_code=404, detail=f"version {version_id} not found")
    counts = svc.versions.comment_counts(version.file_id)
    return version_out(version, counts.get(version.id, 0))


@router.get("/versions/{version_id}/content")
async def get_version_content(version_id: int, svc=Depends(get_services)):
    version = svc.versions.get_version(version_id)
    if version is None:
        raise HTTPException(status_code=404, detail=f"version {version_id} not found")
    try:
        data = svc.versions.read_content(version)
    except VaultError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
    return Response(content=data, media_type="application/pdf")
