# services/api/client/coordinator.py
"""
Sync Coordinator: keeps the viewer's versions and annotations consistent
across the vault store and the local fallback cache.

Load: store first; if the reference has no store id or any store call
fails, read the fallback cache instead. One source wins per load.

Save: update memory first, then try the store; on failure (or when there
is no store id) write the whole in-memory list to the fallback cache.
The user is only told when both fail.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.errors import NotFound, StoreUnavailable, Unresolvable
from core.status import coerce_status, resolve_color
from core.validation import is_above_min_drag
from models import Rect
from .fallback_cache import FallbackCache, JsonFileFallbackCache
from .file_ref import annotations_key, resolve_file_id, versions_key
from .records import AnnotationEntry, RecordId, SavePhase, SaveResult, VersionEntry
from .store_client import HttpStoreClient, StoreClient

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "could not save; changes may be lost on reload"

SOURCE_STORE = "store"
SOURCE_CACHE = "cache"


@dataclass
class RawFile:
    """The file the viewer was opened with, before any version exists."""
    name: str
    url: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _local_id(prefix: str = "local") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class SyncCoordinator:
    def __init__(
        self,
        file_ref: Any,
        store: StoreClient,
        cache: FallbackCache,
        *,
        user: int,
        project_id: Optional[int] = None,
        raw_file: Optional[RawFile] = None,
        notifier: Optional[Callable[[str], None]] = None,
        scale: float = 1.0,
        timeout: Optional[float] = None,
    ) -> None:
        self.file_ref = file_ref
        self.store = store
        self.cache = cache
        self.user = user
        self.project_id = project_id
        self.raw_file = raw_file
        self.notifier = notifier
        self.scale = scale
        self.timeout = timeout

        self.versions: List[VersionEntry] = []
        self.annotations: List[AnnotationEntry] = []
        self.active_version_id: Optional[RecordId] = None
        self.pdf_url: Optional[str] = None
        self.source: Optional[str] = None

        self._locks: Dict[RecordId, asyncio.Lock] = {}
        # local id -> server id once a create is confirmed
        self._aliases: Dict[str, int] = {}
        self._phases: Dict[RecordId, SavePhase] = {}
        self._version_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, file_ref: Any, settings, **kwargs) -> "SyncCoordinator":
        """HTTP store and file-backed fallback cache configured from `settings`."""
        kwargs.setdefault("timeout", settings.store_timeout_seconds)
        return cls(
            file_ref,
            HttpStoreClient.from_settings(settings),
            JsonFileFallbackCache.from_settings(settings),
            **kwargs,
        )

    # ---------- helpers ----------

    def _file_id(self) -> Optional[int]:
        try:
            return resolve_file_id(self.file_ref)
        except Unresolvable:
            return None

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"store call exceeded {self.timeout}s") from e

    def _lock_for(self, annotation_id: RecordId) -> asyncio.Lock:
        return self._locks.setdefault(annotation_id, asyncio.Lock())

    def _find(self, annotation_id: RecordId) -> AnnotationEntry:
        annotation_id = self._aliases.get(annotation_id, annotation_id)
        for entry in self.annotations:
            if entry.id == annotation_id:
                return entry
        raise NotFound("annotation", annotation_id)

    def _set_active(self, version: VersionEntry) -> None:
        self.active_version_id = version.id
        self.pdf_url = version.file_url

    @property
    def current_version(self) -> Optional[VersionEntry]:
        if not self.versions:
            return None
        return max(self.versions, key=lambda v: v.version_number)

    @property
    def visible_annotations(self) -> List[AnnotationEntry]:
        """Annotations of the active version (cache entries may lack a version)."""
        return [
            a for a in self.annotations
            if a.pdf_version_id is None or a.pdf_version_id == self.active_version_id
        ]

    def save_phase(self, annotation_id: RecordId) -> Optional[SavePhase]:
        """Where the last save of an annotation stands; None once deleted or never saved."""
        return self._phases.get(self._aliases.get(annotation_id, annotation_id))

    def _settle(self, key: RecordId, result: SaveResult) -> SaveResult:
        self._phases[key] = result.phase
        return result

    def _notify(self, message: str) -> None:
        logger.error(f"{message} (file {self.file_ref})")
        if self.notifier is not None:
            self.notifier(message)

    # ---------- load ----------

    async def load(self) -> str:
        """Populate versions/annotations; returns which source won."""
        file_id = self._file_id()
        if file_id is not None:
            try:
                rows = await self._call(self.store.list_versions(file_id))
                if rows:
                    fallback_name = self.raw_file.name if self.raw_file else ""
                    versions = [VersionEntry.from_store(r, fallback_name) for r in rows]
                    current = max(versions, key=lambda v: v.version_number)
                    ann_rows = await self._call(
                        self.store.list_annotations(current.id, project_id=self.project_id)
                    )
                    # an empty annotation list from the store is authoritative
                    self.versions = versions
                    self.annotations = [AnnotationEntry.model_validate(r) for r in ann_rows]
                    self._set_active(current)
                    self.source = SOURCE_STORE
                    logger.info(
                        f"Loaded file {file_id} from store: {len(versions)} versions, "
                        f"{len(self.annotations)} annotations"
                    )
                    return self.source
            except Exception as e:
                logger.warning(f"Store load failed for file {self.file_ref}, using fallback cache: {e}")

        self._load_from_cache()
        return self.source

    def _cache_read(self, key: str) -> List[Dict[str, Any]]:
        try:
            value = self.cache.get(key)
        except Exception as e:
            logger.warning(f"Fallback cache read failed for {key}: {e}")
            return []
        return value if isinstance(value, list) else []

    def _load_from_cache(self) -> None:
        annotations: List[AnnotationEntry] = []
        for raw in self._cache_read(annotations_key(self.file_ref)):
            try:
                annotations.append(AnnotationEntry.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed cached annotation: {e}")

        versions: List[VersionEntry] = []
        for raw in self._cache_read(versions_key(self.file_ref)):
            try:
                versions.append(VersionEntry.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed cached version: {e}")

        if not versions and self.raw_file is not None:
            versions = [
                VersionEntry(
                    id=str(self.file_ref),
                    version_number=1,
                    filename=self.raw_file.name,
                    file_url=self.raw_file.url,
                    description="Initial version",
                    uploaded=_now(),
                    uploaded_by=self.user,
                )
            ]
            try:
                self.cache.put(versions_key(self.file_ref), [v.to_cache() for v in versions])
            except Exception as e:
                logger.warning(f"Could not cache synthesized version for {self.file_ref}: {e}")

        self.versions = versions
        self.annotations = annotations
        current = self.current_version
        if current is not None:
            self._set_active(current)
        else:
            self.active_version_id = None
            self.pdf_url = None
        self.source = SOURCE_CACHE
        logger.info(
            f"Loaded file {self.file_ref} from fallback cache: {len(versions)} versions, "
            f"{len(annotations)} annotations"
        )

    # ---------- fallback writes ----------

    def _cache_annotations(self, local_id: RecordId, error: Optional[BaseException]) -> SaveResult:
        try:
            # cached annotations need their versions to be visible on a cache load
            if self.versions and not self._cache_read(versions_key(self.file_ref)):
                self.cache.put(versions_key(self.file_ref), [v.to_cache() for v in self.versions])
            self.cache.put(annotations_key(self.file_ref), [a.to_cache() for a in self.annotations])
        except Exception as e:
            self._notify(SAVE_FAILED_MESSAGE)
            return SaveResult(SavePhase.FAILED, local_id=local_id, error=e)
        return SaveResult(SavePhase.CACHED, local_id=local_id, error=error)

    def _cache_versions(self, local_id: RecordId, error: Optional[BaseException]) -> SaveResult:
        try:
            self.cache.put(versions_key(self.file_ref), [v.to_cache() for v in self.versions])
        except Exception as e:
            self._notify(SAVE_FAILED_MESSAGE)
            return SaveResult(SavePhase.FAILED, local_id=local_id, error=e)
        return SaveResult(SavePhase.CACHED, local_id=local_id, error=error)

    # ---------- annotations ----------

    async def create_annotation(
        self,
        rect: Any,
        comment: str = "",
        *,
        status: Any = None,
        color: Optional[str] = None,
        assigned_to: Optional[str] = None,
        deadline: Any = None,
    ) -> Optional[SaveResult]:
        """
        Add a marker drawn by the user.

        Returns None when the drag was too small to count; nothing is
        stored in that case.
        """
        rect = rect if isinstance(rect, Rect) else Rect.model_validate(rect)
        if not is_above_min_drag(rect.width, rect.height, self.scale):
            logger.info(f"Discarding {rect.width}x{rect.height} marker below minimum drag size")
            return None

        status = coerce_status(status)
        entry = AnnotationEntry(
            id=_local_id(),
            pdf_version_id=self.active_version_id,
            project_id=self.project_id,
            rect=rect,
            color=resolve_color(status, color),
            comment=comment or "",
            status=status,
            created_at=_now(),
            created_by_id=self.user,
            assigned_to=assigned_to,
            deadline=deadline,
        )
        self.annotations.append(entry)
        local_id = entry.id
        self._phases[local_id] = SavePhase.PENDING

        async with self._lock_for(local_id):
            error: Optional[BaseException] = None
            if self._file_id() is not None and isinstance(self.active_version_id, int):
                payload = {
                    "pdfVersionId": self.active_version_id,
                    "projectId": self.project_id,
                    "rect": rect.model_dump(by_alias=True),
                    "color": entry.color,
                    "comment": entry.comment,
                    "status": entry.status.value,
                    "createdById": self.user,
                    "assignedTo": assigned_to,
                    "deadline": entry.deadline.isoformat() if entry.deadline else None,
                }
                try:
                    row = await self._call(self.store.create_annotation(payload))
                except Exception as e:
                    logger.warning(f"Store rejected new annotation, caching locally: {e}")
                    error = e
                else:
                    confirmed = AnnotationEntry.model_validate(row)
                    server_id = int(confirmed.id)
                    entry.id = server_id
                    entry.created_at = confirmed.created_at
                    self._aliases[local_id] = server_id
                    self._locks[server_id] = self._lock_for(local_id)
                    self._phases.pop(local_id, None)
                    return self._settle(
                        server_id, SaveResult(SavePhase.CONFIRMED, local_id=local_id, server_id=server_id)
                    )

            return self._settle(local_id, self._cache_annotations(local_id, error))

    async def _update(self, annotation_id: RecordId, changes: Dict[str, Any]) -> SaveResult:
        async with self._lock_for(annotation_id):
            entry = self._find(annotation_id)

            if "status" in changes:
                status = coerce_status(changes["status"])
                changes["status"] = status.value
                entry.status = status
                entry.color = resolve_color(status, changes.get("color"))
                changes["color"] = entry.color
            elif changes.get("color"):
                entry.color = changes["color"]
            if "comment" in changes:
                entry.comment = changes["comment"] or ""
            if "assignedTo" in changes:
                entry.assigned_to = changes["assignedTo"]
            if "deadline" in changes:
                entry.deadline = changes["deadline"] or None
                if entry.deadline is not None:
                    changes["deadline"] = entry.deadline.isoformat()

            self._phases[entry.id] = SavePhase.PENDING
            error: Optional[BaseException] = None
            if self._file_id() is not None and not entry.is_local:
                try:
                    row = await self._call(self.store.update_annotation(entry.id, changes))
                except Exception as e:
                    logger.warning(f"Store rejected update of annotation {entry.id}, caching locally: {e}")
                    error = e
                else:
                    entry.color = row.get("color") or entry.color
                    return self._settle(
                        entry.id, SaveResult(SavePhase.CONFIRMED, local_id=annotation_id, server_id=entry.id)
                    )

            return self._settle(entry.id, self._cache_annotations(annotation_id, error))

    async def update_status(self, annotation_id: RecordId, status: Any, color: Optional[str] = None) -> SaveResult:
        changes: Dict[str, Any] = {"status": status}
        if color:
            changes["color"] = color
        return await self._update(annotation_id, changes)

    async def update_comment(self, annotation_id: RecordId, comment: str) -> SaveResult:
        return await self._update(annotation_id, {"comment": comment})

    async def update_assignment(
        self,
        annotation_id: RecordId,
        assigned_to: Optional[str],
        deadline: Any = None,
    ) -> SaveResult:
        changes: Dict[str, Any] = {"assignedTo": (assigned_to or "").strip() or None}
        if deadline is not None:
            changes["deadline"] = deadline
        return await self._update(annotation_id, changes)

    async def delete_annotation(self, annotation_id: RecordId) -> SaveResult:
        async with self._lock_for(annotation_id):
            entry = self._find(annotation_id)
            self.annotations = [a for a in self.annotations if a is not entry]
            self._phases.pop(entry.id, None)

            error: Optional[BaseException] = None
            if self._file_id() is not None and not entry.is_local:
                try:
                    await self._call(self.store.delete_annotation(entry.id))
                except NotFound:
                    # already gone on the server
                    return SaveResult(SavePhase.CONFIRMED, local_id=annotation_id, server_id=entry.id)
                except Exception as e:
                    logger.warning(f"Store rejected delete of annotation {entry.id}, caching locally: {e}")
                    error = e
                else:
                    return SaveResult(SavePhase.CONFIRMED, local_id=annotation_id, server_id=entry.id)

            return self._cache_annotations(annotation_id, error)

    # ---------- versions ----------

    async def add_version(
        self,
        content: bytes,
        filename: str,
        description: Optional[str] = None,
        file_url: str = "",
    ) -> SaveResult:
        """Upload new content; the new version becomes the active one."""
        async with self._version_lock:
            current = self.current_version
            entry = VersionEntry(
                id=_local_id("version"),
                version_number=(current.version_number + 1) if current else 1,
                filename=filename,
                file_url=file_url,
                description=description,
                uploaded=_now(),
                uploaded_by=self.user,
            )
            self.versions.append(entry)
            self._set_active(entry)
            local_id = entry.id

            error: Optional[BaseException] = None
            file_id = self._file_id()
            if file_id is not None:
                try:
                    row = await self._call(
                        self.store.create_version(file_id, content, filename, description, self.user)
                    )
                except Exception as e:
                    logger.warning(f"Store rejected new version of file {file_id}, caching locally: {e}")
                    error = e
                else:
                    server = VersionEntry.from_store(row, filename)
                    entry.id = server.id
                    entry.version_number = server.version_number
                    entry.file_url = server.file_url
                    entry.uploaded = server.uploaded
                    self._set_active(entry)
                    return SaveResult(SavePhase.CONFIRMED, local_id=local_id, server_id=int(server.id))

            return self._cache_versions(local_id, error)

    # ---------- promotion ----------

    async def promote_to_task(self, annotation_id: RecordId) -> Optional[Dict[str, Any]]:
        """
        Ask the store to create a task from a confirmed annotation.

        Returns the created task, or None when the annotation only exists
        locally or the store call failed.
        """
        async with self._lock_for(annotation_id):
            entry = self._find(annotation_id)
            if entry.is_local or self._file_id() is None:
                logger.warning(f"Annotation {annotation_id} is not in the store; cannot promote")
                return None
            try:
                result = await self._call(self.store.promote_to_task(entry.id))
            except Exception as e:
                logger.warning(f"Promotion of annotation {entry.id} failed: {e}")
                return None

            task = result.get("task") or {}
            if result.get("linked", True) and task.get("id") is not None:
                entry.task_id = int(task["id"])
            return task
