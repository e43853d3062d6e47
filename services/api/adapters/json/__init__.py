"""
JSON file storage adapter for the PDF vault.
Simple file-based storage for quick demos and testing.
Not production-ready (process-local locking only, not suitable for
multiple server processes).
"""
import json
import threading
from datetime import date, datetime, timezone
from typing import List, Dict, Any, Optional
from pathlib import Path

from core.errors import NotFound


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _jsonable(v: Any) -> Any:
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    return v


class JsonAdapter:
    """
    JSON file-based storage adapter.
    Stores each table in its own JSON file under the data directory.
    Uses atomic file operations for basic consistency.
    """

    TABLES = ("files", "pdf_versions", "pdf_annotations", "tasks")

    def __init__(self, data_dir: str = "data/json"):
        """
        Initialize the JSON adapter.

        Args:
            data_dir: Directory to store JSON files
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        self.paths = {t: self.data_dir / f"{t}.json" for t in self.TABLES}

        # Initialize files if they don't exist
        for file in self.paths.values():
            if not file.exists():
                self._write_file(file, [])

    def _read_file(self, filepath: Path) -> List[Dict[str, Any]]:
        """Read and parse a JSON file."""
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return []

    def _write_file(self, filepath: Path, data: List[Dict[str, Any]]) -> None:
        """Write data to a JSON file atomically."""
        # Write to temporary file first
        tmp_file = filepath.with_suffix(".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        # Atomic rename
        tmp_file.replace(filepath)

    def _read(self, table: str) -> List[Dict[str, Any]]:
        return self._read_file(self.paths[table])

    def _write(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self._write_file(self.paths[table], rows)

    @staticmethod
    def _next_id(rows: List[Dict[str, Any]]) -> int:
        return max((int(r["id"]) for r in rows), default=0) + 1

    # ========== Files ==========

    def create_file(
        self,
        name: str,
        uploaded_by_id: int,
        file_path: str,
        project_id: Optional[int] = None,
        folder_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Register a new file."""
        with self._lock:
            rows = self._read("files")
            row = {
                "id": self._next_id(rows),
                "name": name,
                "project_id": project_id,
                "folder_id": folder_id,
                "uploaded_by_id": uploaded_by_id,
                "file_path": file_path,
                "uploaded_at": _now_iso(),
            }
            rows.append(row)
            self._write("files", rows)
            return dict(row)

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        return next((dict(r) for r in self._read("files") if r["id"] == file_id), None)

    # ========== Versions ==========

    def list_versions(self, file_id: int) -> List[Dict[str, Any]]:
        """All versions of a file, ordered by version_number."""
        rows = [dict(r) for r in self._read("pdf_versions") if r["file_id"] == file_id]
        rows.sort(key=lambda r: r["version_number"])
        return rows

    def get_version(self, version_id: int) -> Optional[Dict[str, Any]]:
        return next((dict(r) for r in self._read("pdf_versions") if r["id"] == version_id), None)

    def create_version(
        self,
        file_id: int,
        file_path: str,
        uploaded_by_id: int,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Append a version with the next number for its file."""
        with self._lock:
            if self.get_file(file_id) is None:
                raise NotFound("file", file_id)

            rows = self._read("pdf_versions")
            numbers = [r["version_number"] for r in rows if r["file_id"] == file_id]
            number = max(numbers, default=0) + 1

            row = {
                "id": self._next_id(rows),
                "file_id": file_id,
                "version_number": number,
                "file_path": file_path,
                "description": description,
                "uploaded_at": _now_iso(),
                "uploaded_by_id": uploaded_by_id,
                "metadata": metadata,
            }
            rows.append(row)
            self._write("pdf_versions", rows)
            return dict(row)

    def count_annotations_by_version(self, file_id: int) -> Dict[int, int]:
        version_ids = {v["id"] for v in self.list_versions(file_id)}
        counts: Dict[int, int] = {}
        for a in self._read("pdf_annotations"):
            vid = a["pdf_version_id"]
            if vid in version_ids:
                counts[vid] = counts.get(vid, 0) + 1
        return counts

    # ========== Annotations ==========

    def list_annotations(self, version_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self._read("pdf_annotations") if r["pdf_version_id"] == version_id]
        if project_id is not None:
            rows = [r for r in rows if r.get("project_id") == project_id]
        return rows

    def list_all_annotations(self) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self._read("pdf_annotations")]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows

    def get_annotation(self, annotation_id: int) -> Optional[Dict[str, Any]]:
        return next((dict(r) for r in self._read("pdf_annotations") if r["id"] == annotation_id), None)

    def create_annotation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Create an annotation on an existing version."""
        with self._lock:
            if self.get_version(row["pdf_version_id"]) is None:
                raise NotFound("version", row["pdf_version_id"])

            rows = self._read("pdf_annotations")
            record = {k: _jsonable(v) for k, v in row.items()}
            record["id"] = self._next_id(rows)
            record["created_at"] = _now_iso()
            rows.append(record)
            self._write("pdf_annotations", rows)
            return dict(record)

    def patch_annotation(self, annotation_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Partially update an annotation."""
        with self._lock:
            rows = self._read("pdf_annotations")
            target = next((r for r in rows if r["id"] == annotation_id), None)
            if not target:
                raise NotFound("annotation", annotation_id)

            for k, v in updates.items():
                if k in ("id", "created_at"):
                    continue
                target[k] = _jsonable(v)

            self._write("pdf_annotations", rows)
            return dict(target)

    def delete_annotation(self, annotation_id: int) -> None:
        with self._lock:
            rows = self._read("pdf_annotations")
            kept = [r for r in rows if r["id"] != annotation_id]
            if len(kept) == len(rows):
                raise NotFound("annotation", annotation_id)
            self._write("pdf_annotations", kept)

    # ========== Tasks ==========

    def create_task(self, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self._read("tasks")
            record = {k: _jsonable(v) for k, v in row.items()}
            record["id"] = self._next_id(rows)
            record["created_at"] = _now_iso()
            rows.append(record)
            self._write("tasks", rows)
            return dict(record)

    def get_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        return next((dict(r) for r in self._read("tasks") if r["id"] == task_id), None)

    def ping(self) -> None:
        if not self.data_dir.is_dir():
            raise RuntimeError(f"data dir {self.data_dir} is missing")
