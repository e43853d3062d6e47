# services/api/core/versions.py
"""
Version Store: immutable, sequentially numbered snapshots of a file.

"Current version" is never stored; it is the highest version_number,
derived on every read.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from adapters.base import StorageAdapter
from core.blob_store import BlobStore
from core.errors import NotFound, VersionConflict
from models import FileRecord, PdfVersion
from models.converters import file_from_row, version_from_row

logger = logging.getLogger(__name__)


class VersionStore:
    def __init__(self, storage: StorageAdapter, blobs: BlobStore) -> None:
        self.storage = storage
        self.blobs = blobs

    def list_versions(self, file_id: int) -> List[PdfVersion]:
        """
        Versions of a file ordered by version_number ascending.

        Raises:
            NotFound: the file itself does not exist. A known file with no
            versions yet returns an empty list.
        """
        rows = self.storage.list_versions(file_id)
        if not rows and self.storage.get_file(file_id) is None:
            raise NotFound("file", file_id)
        return [version_from_row(r) for r in rows]

    def get_version(self, version_id: int) -> Optional[PdfVersion]:
        row = self.storage.get_version(version_id)
        return version_from_row(row) if row else None

    def current_version(self, file_id: int) -> Optional[PdfVersion]:
        versions = self.list_versions(file_id)
        if not versions:
            return None
        return max(versions, key=lambda v: v.version_number)

    def comment_counts(self, file_id: int) -> Dict[int, int]:
        return self.storage.count_annotations_by_version(file_id)

    def register_file(
        self,
        name: str,
        content: bytes,
        uploader_id: int,
        project_id: Optional[int] = None,
        folder_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Tuple[FileRecord, PdfVersion]:
        """
        Record a new file and its version 1 in one step.

        The file record and version 1 point at the same binary.
        """
        if not content:
            raise ValueError("file content is empty")

        rel_path = self.blobs.write("uploads", content)
        try:
            frow = self.storage.create_file(
                name=name,
                uploaded_by_id=uploader_id,
                file_path=rel_path,
                project_id=project_id,
                folder_id=folder_id,
            )
            vrow = self._insert_with_retry(
                int(frow["id"]), rel_path, uploader_id, description or "Initial version", None
            )
        except Exception:
            self.blobs.delete(rel_path)
            raise

        record = file_from_row(frow)
        logger.info(f"Registered file {record.id} ({name!r}, {len(content)} bytes)")
        return record, version_from_row(vrow)

    def get_file(self, file_id: int) -> FileRecord:
        row = self.storage.get_file(file_id)
        if not row:
            raise NotFound("file", file_id)
        return file_from_row(row)

    def create_version(
        self,
        file_id: int,
        content: bytes,
        description: Optional[str],
        uploader_id: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PdfVersion:
        """
        Persist `content` out-of-band and record it as the next version.

        Binary first, record second: if the binary write fails no record is
        written; if the record write fails the binary is removed again.
        """
        if not content:
            raise ValueError("version content is empty")

        rel_path = self.blobs.write(file_id, content)
        try:
            row = self._insert_with_retry(file_id, rel_path, uploader_id, description, metadata)
        except Exception:
            self.blobs.delete(rel_path)
            raise

        version = version_from_row(row)
        logger.info(
            f"Created version {version.version_number} of file {file_id} "
            f"(id={version.id}, {len(content)} bytes)"
        )
        return version

    @retry(
        retry=retry_if_exception_type(VersionConflict),
        stop=stop_after_attempt(5),
        wait=wait_random(min=0.01, max=0.1),
        reraise=True,
    )
    def _insert_with_retry(
        self,
        file_id: int,
        rel_path: str,
        uploader_id: int,
        description: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return self.storage.create_version(
            file_id=file_id,
            file_path=rel_path,
            uploaded_by_id=uploader_id,
            description=description,
            metadata=metadata,
        )

    def read_content(self, version: PdfVersion) -> bytes:
        if not self.blobs.exists(version.file_path):
            raise NotFound("version content", version.id)
        return self.blobs.read(version.file_path)
