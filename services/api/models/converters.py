from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from core.status import coerce_status
from . import FileRecord, PdfAnnotation, PdfVersion, Rect, Task


def _opt_int(v: Any) -> Optional[int]:
    """
    Storage rows may carry ints, numeric strings (Sheets) or blanks.
    """
    if v is None:
        return None
    s = str(v).strip()
    if not s:
        return None
    return int(float(s))


def _dt(v: Any) -> datetime:
    if isinstance(v, datetime):
        return v
    s = str(v or "").strip()
    if not s:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _opt_date(v: Any) -> Optional[date]:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    return date.fromisoformat(str(v)[:10])


def _json_obj(v: Any) -> Optional[Dict[str, Any]]:
    """JSON columns come back as dicts (SQL/JSON file) or strings (Sheets)."""
    if v is None or v == "":
        return None
    if isinstance(v, dict):
        return v
    try:
        parsed = json.loads(v)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def file_from_row(row: Dict[str, Any]) -> FileRecord:
    return FileRecord(
        id=int(row["id"]),
        name=row.get("name") or "",
        project_id=_opt_int(row.get("project_id")),
        folder_id=_opt_int(row.get("folder_id")),
        uploaded_by_id=int(row["uploaded_by_id"]),
        file_path=row.get("file_path") or "",
        uploaded_at=_dt(row.get("uploaded_at")),
    )


def version_from_row(row: Dict[str, Any]) -> PdfVersion:
    return PdfVersion(
        id=int(row["id"]),
        file_id=int(row["file_id"]),
        version_number=int(row["version_number"]),
        file_path=row.get("file_path") or "",
        description=row.get("description") or None,
        uploaded_at=_dt(row.get("uploaded_at")),
        uploaded_by_id=int(row["uploaded_by_id"]),
        metadata=_json_obj(row.get("metadata")),
    )


def annotation_from_row(row: Dict[str, Any]) -> PdfAnnotation:
    rect = _json_obj(row.get("rect")) or {}
    return PdfAnnotation(
        id=int(row["id"]),
        pdf_version_id=int(row["pdf_version_id"]),
        project_id=_opt_int(row.get("project_id")),
        rect=Rect.model_validate(rect),
        color=row.get("color") or "",
        comment=row.get("comment") or "",
        status=coerce_status(row.get("status")),
        created_at=_dt(row.get("created_at")),
        created_by_id=int(row["created_by_id"]),
        assigned_to=(row.get("assigned_to") or None),
        task_id=_opt_int(row.get("task_id")),
        deadline=_opt_date(row.get("deadline")),
    )


def task_from_row(row: Dict[str, Any]) -> Task:
    return Task(
        id=int(row["id"]),
        title=row.get("title") or "",
        description=row.get("description") or "",
        project_id=_opt_int(row.get("project_id")),
        source_annotation_id=_opt_int(row.get("source_annotation_id")),
        assigned_to=(row.get("assigned_to") or None),
        deadline=_opt_date(row.get("deadline")),
        created_at=_dt(row.get("created_at")),
    )


# API-shape (camelCase) field -> storage column
ANNOTATION_API_TO_ROW = {
    "pdfVersionId": "pdf_version_id",
    "projectId": "project_id",
    "rect": "rect",
    "color": "color",
    "comment": "comment",
    "status": "status",
    "createdById": "created_by_id",
    "assignedTo": "assigned_to",
    "taskId": "task_id",
    "deadline": "deadline",
}


def annotation_row_from_api(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map a coerced API payload onto storage column names (unknown keys dropped)."""
    row: Dict[str, Any] = {}
    for api_key, col in ANNOTATION_API_TO_ROW.items():
        if api_key in data:
            v = data[api_key]
            if col == "status" and v is not None:
                v = coerce_status(v).value
            row[col] = v
    return row
