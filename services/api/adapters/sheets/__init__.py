# services/api/adapters/sheets/__init__.py
from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, List, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.errors import NotFound, VersionConflict
from ..base import StorageAdapter

# ========== Sheet schema (HEADERS) ==========

HEADERS = {
    "files": [
        "id",
        "name",
        "project_id",
        "folder_id",
        "uploaded_by_id",
        "file_path",
        "uploaded_at",
    ],
    "pdf_versions": [
        "id",
        "file_id",
        "version_number",
        "file_path",
        "description",
        "uploaded_at",
        "uploaded_by_id",
        "metadata",        # JSON
    ],
    "pdf_annotations": [
        "id",
        "pdf_version_id",
        "project_id",
        "rect",            # JSON {x, y, width, height, pageNumber}
        "color",
        "comment",
        "status",
        "created_at",
        "created_by_id",
        "assigned_to",
        "task_id",
        "deadline",
    ],
    "tasks": [
        "id",
        "title",
        "description",
        "project_id",
        "source_annotation_id",
        "assigned_to",
        "deadline",
        "created_at",
    ],
}

SHEET_TAB_ORDER = [
    "files",
    "pdf_versions",
    "pdf_annotations",
    "tasks",
]

# Columns parsed back to int when reading rows
INT_COLUMNS = {
    "id",
    "file_id",
    "project_id",
    "folder_id",
    "uploaded_by_id",
    "version_number",
    "pdf_version_id",
    "created_by_id",
    "task_id",
    "source_annotation_id",
}
JSON_COLUMNS = {"rect", "metadata"}


def _safe_int(v, default=None):
    try:
        if v is None:
            return default
        s = str(v).strip()
        if s == "":
            return default
        # allow "3.0" etc
        return int(float(s))
    except Exception:
        return default


def _utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _to_cell(v: Any) -> Any:
    if v is None:
        return ""
    if isinstance(v, (dict, list)):
        return json.dumps(v, separators=(",", ":"))
    if hasattr(v, "isoformat"):
        return v.isoformat()
    return v


def _from_cells(row: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a row of sheet strings back into typed values."""
    out: Dict[str, Any] = {}
    for k, v in row.items():
        if k in INT_COLUMNS:
            out[k] = _safe_int(v)
        elif k in JSON_COLUMNS:
            try:
                out[k] = json.loads(v) if v else None
            except (TypeError, ValueError):
                out[k] = None
        else:
            out[k] = v if v != "" else None
    return out


def _sa_client_from_json_or_path(google_sa_json: str) -> gspread.Client:
    """
    Accepts either:
      - absolute/relative path to a service-account JSON file, OR
      - a literal JSON string.
    Returns an authorized gspread Client.
    """
    if not google_sa_json:
        raise ValueError("GOOGLE_SA_JSON is required (path to file or inline JSON).")

    # Try to treat as inline JSON first
    try:
        parsed = json.loads(google_sa_json)
        creds = Credentials.from_service_account_info(
            parsed,
            scopes=["https://www.googleapis.com/auth/spreadsheets"],
        )
        return gspread.authorize(creds)
    except json.JSONDecodeError:
        # Not JSON; treat as file path
        creds = Credentials.from_service_account_file(
            google_sa_json,
            scopes=["https://www.googleapis.com/auth/spreadsheets"],
        )
        return gspread.authorize(creds)


# ========== Retry decorator for Google Sheets API calls ==========
def retry_sheets_api(func):
    """Decorator to retry Sheets API calls with exponential backoff on quota errors."""
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((gspread.exceptions.APIError,)),
        reraise=True,
    )
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


class SheetsAdapter(StorageAdapter):
    """
    Google Sheets implementation:
    - one tab per table, header row = column names
    - integer ids assigned as max(id) + 1 under a process-local lock
    - retry logic for quota errors
    """

    def __init__(
        self,
        google_sa_json: Optional[str] = None,
        spreadsheet_id: Optional[str] = None,
        *,
        spreadsheet: Optional[gspread.Spreadsheet] = None,
    ) -> None:
        if spreadsheet is None:
            if not google_sa_json or not spreadsheet_id:
                raise ValueError("SheetsAdapter requires GOOGLE_SA_JSON and SHEETS_SPREADSHEET_ID")
            self.gc = _sa_client_from_json_or_path(google_sa_json)
            spreadsheet = self.gc.open_by_key(spreadsheet_id)
        self.ss = spreadsheet
        self._lock = threading.RLock()

        self.ws: dict[str, gspread.Worksheet] = {}
        self.colmap: dict[str, dict[str, int]] = {}
        for tab in SHEET_TAB_ORDER:
            self.ws[tab] = self._ensure_worksheet(tab)
            self.colmap[tab] = self._ensure_headers(tab)

    # ========== Worksheet helpers ==========

    def _ensure_worksheet(self, name: str) -> gspread.Worksheet:
        try:
            return self.ss.worksheet(name)
        except gspread.WorksheetNotFound:
            return self.ss.add_worksheet(
                title=name,
                rows=200,
                cols=len(HEADERS[name]) + 2,
            )

    def _ensure_headers(self, name: str) -> dict[str, int]:
        ws = self.ws[name]
        values = ws.get_values("1:1")
        existing = values[0] if values else []

        base = HEADERS[name][:]
        if not existing:
            ws.update("A1", [base])
            header = base
        else:
            # If required base columns are missing, append them at the end.
            # If the sheet already has extra columns, KEEP them.
            missing = [c for c in base if c not in existing]
            header = existing + missing if missing else existing
            if header != existing:
                ws.update("1:1", [header])

        return {col: idx + 1 for idx, col in enumerate(header)}

    @retry_sheets_api
    def _get_all_dicts(self, tab: str) -> list[dict[str, Any]]:
        """Get all rows from a tab as dictionaries. WITH RETRY."""
        ws = self.ws[tab]
        rows = ws.get_all_values()
        if not rows:
            return []
        header = rows[0]
        out = []
        for r in rows[1:]:
            out.append({header[i]: (r[i] if i < len(r) else "") for i in range(len(header))})
        return out

    def _rows(self, tab: str) -> list[dict[str, Any]]:
        return [_from_cells(r) for r in self._get_all_dicts(tab)]

    @retry_sheets_api
    def _append_rows(self, tab: str, rows: list[list[Any]]) -> None:
        """Append rows to tab. WITH RETRY."""
        if rows:
            self.ws[tab].append_rows(rows, value_input_option="RAW")

    @retry_sheets_api
    def _update_cells(self, tab: str, row_idx: int, updates: dict[str, Any]) -> None:
        """Update specific cells in a row. WITH RETRY."""
        colmap = self.colmap[tab]
        data = []
        for k, v in updates.items():
            if k not in colmap:
                continue
            a1 = gspread.utils.rowcol_to_a1(row_idx, colmap[k])
            data.append({"range": a1, "values": [[_to_cell(v)]]})
        if data:
            self.ws[tab].batch_update(data)

    def _find_row_by_value(self, tab: str, col_name: str, value: Any) -> Optional[int]:
        """Find row index by column value."""
        ws = self.ws[tab]
        col_idx = self.colmap[tab][col_name]
        col_vals = ws.col_values(col_idx)
        for i, v in enumerate(col_vals[1:], start=2):  # skip header
            if v == str(value):
                return i
        return None

    def _append_dict_row(self, tab: str, data: dict[str, Any]) -> None:
        """Append one row using the SHEET'S CURRENT HEADER order."""
        header = list(self.colmap[tab].keys())
        row = [_to_cell(data.get(col)) for col in header]
        self._append_rows(tab, [row])

    def _insert(self, tab: str, data: dict[str, Any]) -> dict[str, Any]:
        rows = self._rows(tab)
        record = dict(data)
        record["id"] = max((r["id"] or 0 for r in rows), default=0) + 1
        self._append_dict_row(tab, record)
        return record

    def _get_by_id(self, tab: str, ident: int) -> Optional[dict[str, Any]]:
        return next((r for r in self._rows(tab) if r.get("id") == ident), None)

    # ========== StorageAdapter API ==========

    def create_file(
        self,
        name: str,
        uploaded_by_id: int,
        file_path: str,
        project_id: Optional[int] = None,
        folder_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            return self._insert(
                "files",
                {
                    "name": (name or "").strip(),
                    "project_id": project_id,
                    "folder_id": folder_id,
                    "uploaded_by_id": uploaded_by_id,
                    "file_path": file_path,
                    "uploaded_at": _utc_iso(),
                },
            )

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        return self._get_by_id("files", file_id)

    def list_versions(self, file_id: int) -> List[Dict[str, Any]]:
        rows = [r for r in self._rows("pdf_versions") if r.get("file_id") == file_id]
        rows.sort(key=lambda r: r.get("version_number") or 0)
        return rows

    def get_version(self, version_id: int) -> Optional[Dict[str, Any]]:
        return self._get_by_id("pdf_versions", version_id)

    def create_version(
        self,
        file_id: int,
        file_path: str,
        uploaded_by_id: int,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            if self.get_file(file_id) is None:
                raise NotFound("file", file_id)

            numbers = [v["version_number"] for v in self.list_versions(file_id)]
            number = max(numbers, default=0) + 1
            record = self._insert(
                "pdf_versions",
                {
                    "file_id": file_id,
                    "version_number": number,
                    "file_path": file_path,
                    "description": description,
                    "uploaded_at": _utc_iso(),
                    "uploaded_by_id": uploaded_by_id,
                    "metadata": metadata,
                },
            )

            # Another process may have appended the same number meanwhile.
            same = [v for v in self.list_versions(file_id) if v["version_number"] == number]
            if len(same) > 1 and min(v["id"] for v in same) != record["id"]:
                self._delete_row("pdf_versions", record["id"])
                raise VersionConflict(file_id, number)
            return record

    def count_annotations_by_version(self, file_id: int) -> Dict[int, int]:
        version_ids = {v["id"] for v in self.list_versions(file_id)}
        counts: Dict[int, int] = {}
        for a in self._rows("pdf_annotations"):
            vid = a.get("pdf_version_id")
            if vid in version_ids:
                counts[vid] = counts.get(vid, 0) + 1
        return counts

    def list_annotations(self, version_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        rows = [r for r in self._rows("pdf_annotations") if r.get("pdf_version_id") == version_id]
        if project_id is not None:
            rows = [r for r in rows if r.get("project_id") == project_id]
        return rows

    def list_all_annotations(self) -> List[Dict[str, Any]]:
        rows = self._rows("pdf_annotations")
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows

    def get_annotation(self, annotation_id: int) -> Optional[Dict[str, Any]]:
        return self._get_by_id("pdf_annotations", annotation_id)

    def create_annotation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if self.get_version(row["pdf_version_id"]) is None:
                raise NotFound("version", row["pdf_version_id"])
            data = {k: v for k, v in row.items() if k in HEADERS["pdf_annotations"]}
            data["created_at"] = _utc_iso()
            return self._insert("pdf_annotations", data)

    def patch_annotation(self, annotation_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            row_idx = self._find_row_by_value("pdf_annotations", "id", annotation_id)
            if not row_idx:
                raise NotFound("annotation", annotation_id)
            allowed = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
            self._update_cells("pdf_annotations", row_idx, allowed)
            return self.get_annotation(annotation_id)

    def _delete_row(self, tab: str, ident: int) -> bool:
        """
        Delete a row by id (rewrite the sheet to avoid gspread row-delete quirks).
        """
        all_rows = self._get_all_dicts(tab)
        if not any(r.get("id") == str(ident) for r in all_rows):
            return False

        header = list(self.colmap[tab].keys())
        filtered = [header] + [
            [r.get(k, "") for k in header]
            for r in all_rows
            if r.get("id") != str(ident)
        ]
        self.ws[tab].clear()
        self.ws[tab].update("A1", filtered)
        return True

    def delete_annotation(self, annotation_id: int) -> None:
        with self._lock:
            if not self._delete_row("pdf_annotations", annotation_id):
                raise NotFound("annotation", annotation_id)

    def create_task(self, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            data = {k: v for k, v in row.items() if k in HEADERS["tasks"]}
            data["created_at"] = _utc_iso()
            return self._insert("tasks", data)

    def get_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        return self._get_by_id("tasks", task_id)

    def ping(self) -> None:
        self.ws["files"].acell("A1")
