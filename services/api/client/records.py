# services/api/client/records.py
"""
In-memory records held by the viewer and mirrored into the fallback cache.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import ConfigDict, field_validator

from core.status import AnnotationStatus, DEFAULT_STATUS, coerce_status
from models import DomainModel, Rect

RecordId = Union[int, str]


class VersionEntry(DomainModel):
    """
    One row of the viewer's version list.

    Cache shape: {id, versionNumber, filename, fileUrl, description,
    uploaded, uploadedBy}.
    """
    id: RecordId
    version_number: int
    filename: str = ""
    file_url: str = ""
    description: Optional[str] = None
    uploaded: Optional[datetime] = None
    uploaded_by: Optional[RecordId] = None

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def from_store(cls, row: Dict[str, Any], fallback_name: str = "") -> "VersionEntry":
        metadata = row.get("metadata") or {}
        return cls(
            id=row["id"],
            version_number=row["versionNumber"],
            filename=metadata.get("originalFilename") or fallback_name,
            file_url=row.get("fileUrl") or f"/pdf/versions/{row['id']}/content",
            description=row.get("description"),
            uploaded=row.get("uploadedAt"),
            uploaded_by=row.get("uploadedById"),
        )

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class AnnotationEntry(DomainModel):
    """
    Annotation as the viewer holds it.

    `id` is the server id once confirmed, or a string "local_..." id for
    annotations that only exist in memory or in the fallback cache.
    """
    id: RecordId
    pdf_version_id: Optional[RecordId] = None
    project_id: Optional[int] = None
    rect: Rect
    color: str
    comment: str = ""
    status: AnnotationStatus = DEFAULT_STATUS
    created_at: Optional[datetime] = None
    created_by_id: Optional[RecordId] = None
    assigned_to: Optional[str] = None
    task_id: Optional[int] = None
    deadline: Optional[date] = None

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, v):
        return coerce_status(v)

    @property
    def is_local(self) -> bool:
        return isinstance(self.id, str)

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SavePhase(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"  # store acknowledged
    CACHED = "cached"  # store skipped or failed; fallback cache holds it
    FAILED = "failed"  # both failed; only in memory


@dataclass
class SaveResult:
    phase: SavePhase
    local_id: Optional[RecordId] = None
    server_id: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def persisted(self) -> bool:
        return self.phase in (SavePhase.CONFIRMED, SavePhase.CACHED)
