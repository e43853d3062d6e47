# services/api/core/annotations.py
"""
Annotation Store: positioned, commented markers tied to one version/page.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from cachetools import TTLCache

from adapters.base import StorageAdapter
from core.errors import NotFound
from core.status import AnnotationStatus, coerce_status, resolve_color
from core.validation import coerce_annotation_fields
from models import PdfAnnotation
from models.converters import annotation_from_row, annotation_row_from_api, file_from_row, version_from_row

logger = logging.getLogger(__name__)


class AnnotationStore:
    """
    CRUD over annotations plus a short-lived read cache of per-version lists.

    Every write invalidates the cached list of the owning version.
    """

    def __init__(self, storage: StorageAdapter, cache_ttl: int = 5, cache_size: int = 256) -> None:
        self.storage = storage
        self._cache: TTLCache = TTLCache(maxsize=cache_size, ttl=max(cache_ttl, 0) or 1)
        self._cache_enabled = cache_ttl > 0
        self.cache_hits = 0
        self.cache_misses = 0

    # ---------- cache ----------

    def invalidate(self, version_id: int) -> None:
        for key in [k for k in self._cache.keys() if k[0] == version_id]:
            self._cache.pop(key, None)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ---------- reads ----------

    def list_annotations(self, version_id: int, project_id: Optional[int] = None) -> List[PdfAnnotation]:
        """Annotations of one version. No order implied."""
        key = (version_id, project_id)
        if self._cache_enabled and key in self._cache:
            self.cache_hits += 1
            return list(self._cache[key])
        self.cache_misses += 1

        rows = self.storage.list_annotations(version_id, project_id=project_id)
        if not rows and self.storage.get_version(version_id) is None:
            raise NotFound("version", version_id)

        result = [annotation_from_row(r) for r in rows]
        if self._cache_enabled:
            self._cache[key] = result
        return list(result)

    def get_annotation(self, annotation_id: int) -> PdfAnnotation:
        row = self.storage.get_annotation(annotation_id)
        if not row:
            raise NotFound("annotation", annotation_id)
        return annotation_from_row(row)

    # ---------- writes ----------

    def create_annotation(self, data: Dict[str, Any]) -> PdfAnnotation:
        """
        Persist a new annotation.

        `data` is in wire shape (camelCase). Absent taskId/assignedTo are
        stored as explicit nulls, colour defaults to the status colour.
        """
        payload = coerce_annotation_fields(data, partial=False)
        if payload.get("pdfVersionId") is None:
            raise ValueError("pdfVersionId is required")
        if payload.get("createdById") is None:
            raise ValueError("createdById is required")

        status = coerce_status(payload.get("status"))
        payload["status"] = status
        payload["color"] = resolve_color(status, payload.get("color"))
        payload.setdefault("comment", "")

        row = self.storage.create_annotation(annotation_row_from_api(payload))
        annotation = annotation_from_row(row)
        self.invalidate(annotation.pdf_version_id)
        logger.info(
            f"Created annotation {annotation.id} on version {annotation.pdf_version_id} "
            f"page {annotation.rect.page_number}"
        )
        return annotation

    def update_annotation(self, annotation_id: int, partial: Dict[str, Any]) -> PdfAnnotation:
        """
        Partial update: only keys present in `partial` change.

        A status change also resets colour to the status colour unless the
        same call passes an explicit colour.
        """
        existing = self.storage.get_annotation(annotation_id)
        if not existing:
            raise NotFound("annotation", annotation_id)

        payload = coerce_annotation_fields(partial, partial=True)
        # ownership and authorship are fixed at creation
        for fixed in ("id", "pdfVersionId", "createdById", "createdAt"):
            payload.pop(fixed, None)

        if "status" in payload and payload["status"] is None:
            payload.pop("status")

        if payload.get("status") is not None:
            status = coerce_status(payload["status"])
            payload["status"] = status
            payload["color"] = resolve_color(status, payload.get("color"))
        elif "color" in payload and not payload["color"]:
            payload.pop("color")

        row = self.storage.patch_annotation(annotation_id, annotation_row_from_api(payload))
        annotation = annotation_from_row(row)
        self.invalidate(annotation.pdf_version_id)
        return annotation

    def delete_annotation(self, annotation_id: int) -> Dict[str, int]:
        """
        Delete and return the owning version id for cache invalidation.

        Raises:
            NotFound: unknown annotation (never a silent no-op)
        """
        existing = self.storage.get_annotation(annotation_id)
        if not existing:
            raise NotFound("annotation", annotation_id)
        version_id = int(existing["pdf_version_id"])

        self.storage.delete_annotation(annotation_id)
        self.invalidate(version_id)
        logger.info(f"Deleted annotation {annotation_id} from version {version_id}")
        return {"versionId": version_id}

    # ---------- vault-wide listings ----------

    def list_commented(
        self,
        status: Optional[str] = None,
        query: Optional[str] = None,
        project_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Annotations that carry a comment, enriched with file name and
        version number, filtered by status / free-text query / project.
        """
        wanted: Optional[AnnotationStatus] = coerce_status(status) if status else None
        needle = (query or "").strip().lower()

        versions: Dict[int, Any] = {}
        files: Dict[int, Any] = {}
        out: List[Dict[str, Any]] = []

        for row in self.storage.list_all_annotations():
            annotation = annotation_from_row(row)
            if not annotation.comment:
                continue
            if wanted is not None and annotation.status != wanted:
                continue
            if project_id is not None and annotation.project_id != project_id:
                continue

            vid = annotation.pdf_version_id
            if vid not in versions:
                vrow = self.storage.get_version(vid)
                versions[vid] = version_from_row(vrow) if vrow else None
            version = versions[vid]

            file_name = None
            if version is not None:
                if version.file_id not in files:
                    frow = self.storage.get_file(version.file_id)
                    files[version.file_id] = file_from_row(frow) if frow else None
                f = files[version.file_id]
                file_name = f.name if f else None

            if needle and needle not in annotation.comment.lower() and needle not in (file_name or "").lower():
                continue

            out.append(
                {
                    "annotation": annotation,
                    "file_id": version.file_id if version else None,
                    "file_name": file_name,
                    "version_number": version.version_number if version else None,
                }
            )
        return out

    def list_assigned(self, assigned_to: str) -> List[PdfAnnotation]:
        """Unresolved annotations assigned to `assigned_to` (case-insensitive)."""
        who = (assigned_to or "").strip().lower()
        if not who:
            return []
        result = []
        for row in self.storage.list_all_annotations():
            annotation = annotation_from_row(row)
            if (annotation.assigned_to or "").strip().lower() != who:
                continue
            if annotation.status == AnnotationStatus.RESOLVED:
                continue
            result.append(annotation)
        return result
