"""
Pydantic schemas for PDF versions.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from models import DomainModel


class VersionOut(DomainModel):
    """Version record as returned by the API."""
    id: int
    file_id: int
    version_number: int
    file_path: str
    description: Optional[str] = None
    uploaded_at: datetime
    uploaded_by_id: int
    metadata: Optional[Dict[str, Any]] = None
    file_url: str = Field(..., description="Where to fetch this version's binary")
    comment_count: int = 0


class FileOut(DomainModel):
    """File record plus the version the viewer should open."""
    id: int
    name: str
    project_id: Optional[int] = None
    folder_id: Optional[int] = None
    uploaded_by_id: int
    uploaded_at: datetime
    current_version: Optional[VersionOut] = None
