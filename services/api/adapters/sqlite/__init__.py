# services/api/adapters/sqlite/__init__.py
from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    event,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.errors import NotFound, VersionConflict

# ---- Engine (SQLite) with WAL & pragmas -------------------------------------

def _ensure_dir(path: str):
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)

def make_engine(db_url: str) -> Engine:
    # Create data dir if sqlite file
    if db_url.startswith("sqlite:///"):
        file_path = db_url.replace("sqlite:///", "", 1)
        _ensure_dir(file_path)

    engine = create_engine(db_url, future=True, pool_pre_ping=True)

    # Apply pragmas per-connection
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA busy_timeout=5000;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    return engine


def _now() -> datetime:
    return datetime.now(timezone.utc)

# ---- Schema via SQLAlchemy Core ---------------------------------------------

metadata = MetaData()

files = Table(
    "files",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String, nullable=False),
    Column("project_id", Integer),
    Column("folder_id", Integer),
    Column("uploaded_by_id", Integer, nullable=False),
    Column("file_path", Text, nullable=False),
    Column("uploaded_at", DateTime(timezone=True), nullable=False, default=_now),
)

pdf_versions = Table(
    "pdf_versions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("file_id", Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False),
    Column("version_number", Integer, nullable=False),
    Column("file_path", Text, nullable=False),
    Column("description", Text),
    Column("uploaded_at", DateTime(timezone=True), nullable=False, default=_now),
    Column("uploaded_by_id", Integer, nullable=False),
    Column("metadata", JSON),
    UniqueConstraint("file_id", "version_number", name="uq_pdf_versions_file_number"),
)

pdf_annotations = Table(
    "pdf_annotations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pdf_version_id", Integer, ForeignKey("pdf_versions.id", ondelete="CASCADE"), nullable=False),
    Column("project_id", Integer),
    Column("rect", JSON, nullable=False),
    Column("color", String, nullable=False),
    Column("comment", Text, nullable=False, default=""),
    Column("status", String, nullable=False, default="new_comment"),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_now),
    Column("created_by_id", Integer, nullable=False),
    Column("assigned_to", String),
    # No FK: the link is best-effort and may outlive the task.
    Column("task_id", Integer),
    Column("deadline", Date),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String, nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("project_id", Integer),
    Column("source_annotation_id", Integer),
    Column("assigned_to", String),
    Column("deadline", Date),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_now),
)

Index("idx_pdf_versions_file_id", pdf_versions.c.file_id)
Index("idx_pdf_annotations_version", pdf_annotations.c.pdf_version_id)
Index("idx_pdf_annotations_assigned", pdf_annotations.c.assigned_to)

ANNOTATION_COLUMNS = {c.name for c in pdf_annotations.columns} - {"id", "created_at"}

# ---- Adapter implementation --------------------------------------------------

@dataclass(frozen=True)
class SqliteAdapter:
    engine: Engine

    @classmethod
    def from_url(cls, db_url: str = "sqlite:///data/pdfvault.db") -> "SqliteAdapter":
        eng = make_engine(db_url)
        metadata.create_all(eng)
        return cls(engine=eng)

    # Files
    def create_file(
        self,
        name: str,
        uploaded_by_id: int,
        file_path: str,
        project_id: Optional[int] = None,
        folder_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            res = conn.execute(
                insert(files).values(
                    name=name,
                    project_id=project_id,
                    folder_id=folder_id,
                    uploaded_by_id=uploaded_by_id,
                    file_path=file_path,
                    uploaded_at=_now(),
                )
            )
            file_id = res.inserted_primary_key[0]
            row = conn.execute(select(files).where(files.c.id == file_id)).mappings().first()
            return dict(row)

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(select(files).where(files.c.id == file_id)).mappings().first()
            return dict(row) if row else None

    # Versions
    def list_versions(self, file_id: int) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(pdf_versions)
                .where(pdf_versions.c.file_id == file_id)
                .order_by(pdf_versions.c.version_number.asc())
            ).mappings().all()
            return [dict(r) for r in rows]

    def get_version(self, version_id: int) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(pdf_versions).where(pdf_versions.c.id == version_id)
            ).mappings().first()
            return dict(row) if row else None

    # Number assignment + insert in one transaction; the unique
    # constraint settles races between concurrent writers.
    def create_version(
        self,
        file_id: int,
        file_path: str,
        uploaded_by_id: int,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        number = 0
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(select(files.c.id).where(files.c.id == file_id)).first()
                if not exists:
                    raise NotFound("file", file_id)

                current = conn.execute(
                    select(func.max(pdf_versions.c.version_number))
                    .where(pdf_versions.c.file_id == file_id)
                ).scalar()
                number = int(current or 0) + 1

                res = conn.execute(
                    insert(pdf_versions).values(
                        file_id=file_id,
                        version_number=number,
                        file_path=file_path,
                        description=description,
                        uploaded_at=_now(),
                        uploaded_by_id=uploaded_by_id,
                        metadata=metadata,
                    )
                )
                version_id = res.inserted_primary_key[0]
                row = conn.execute(
                    select(pdf_versions).where(pdf_versions.c.id == version_id)
                ).mappings().first()
                return dict(row)
        except IntegrityError as e:
            raise VersionConflict(file_id, number) from e

    def count_annotations_by_version(self, file_id: int) -> Dict[int, int]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(pdf_annotations.c.pdf_version_id, func.count(pdf_annotations.c.id))
                .select_from(
                    pdf_annotations.join(
                        pdf_versions, pdf_annotations.c.pdf_version_id == pdf_versions.c.id
                    )
                )
                .where(pdf_versions.c.file_id == file_id)
                .group_by(pdf_annotations.c.pdf_version_id)
            ).all()
            return {int(vid): int(n) for vid, n in rows}

    # Annotations
    def list_annotations(self, version_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        q = select(pdf_annotations).where(pdf_annotations.c.pdf_version_id == version_id)
        if project_id is not None:
            q = q.where(pdf_annotations.c.project_id == project_id)
        with self.engine.connect() as conn:
            return [dict(r) for r in conn.execute(q).mappings().all()]

    def list_all_annotations(self) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(pdf_annotations).order_by(pdf_annotations.c.created_at.desc())
            ).mappings().all()
            return [dict(r) for r in rows]

    def get_annotation(self, annotation_id: int) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(pdf_annotations).where(pdf_annotations.c.id == annotation_id)
            ).mappings().first()
            return dict(row) if row else None

    def create_annotation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        values = {k: v for k, v in row.items() if k in ANNOTATION_COLUMNS}
        values["created_at"] = _now()
        try:
            with self.engine.begin() as conn:
                res = conn.execute(insert(pdf_annotations).values(**values))
                annotation_id = res.inserted_primary_key[0]
                out = conn.execute(
                    select(pdf_annotations).where(pdf_annotations.c.id == annotation_id)
                ).mappings().first()
                return dict(out)
        except IntegrityError as e:
            raise NotFound("version", row.get("pdf_version_id")) from e

    def patch_annotation(self, annotation_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {k: v for k, v in updates.items() if k in ANNOTATION_COLUMNS}
        with self.engine.begin() as conn:
            if allowed:
                res = conn.execute(
                    update(pdf_annotations)
                    .where(pdf_annotations.c.id == annotation_id)
                    .values(**allowed)
                )
                if res.rowcount == 0:
                    raise NotFound("annotation", annotation_id)
            row = conn.execute(
                select(pdf_annotations).where(pdf_annotations.c.id == annotation_id)
            ).mappings().first()
            if not row:
                raise NotFound("annotation", annotation_id)
            return dict(row)

    def delete_annotation(self, annotation_id: int) -> None:
        with self.engine.begin() as conn:
            res = conn.execute(delete(pdf_annotations).where(pdf_annotations.c.id == annotation_id))
            if res.rowcount == 0:
                raise NotFound("annotation", annotation_id)

    # Tasks
    def create_task(self, row: Dict[str, Any]) -> Dict[str, Any]:
        cols = {c.name for c in tasks.columns} - {"id", "created_at"}
        values = {k: v for k, v in row.items() if k in cols}
        values["created_at"] = _now()
        with self.engine.begin() as conn:
            res = conn.execute(insert(tasks).values(**values))
            task_id = res.inserted_primary_key[0]
            out = conn.execute(select(tasks).where(tasks.c.id == task_id)).mappings().first()
            return dict(out)

    def get_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(select(tasks).where(tasks.c.id == task_id)).mappings().first()
            return dict(row) if row else None

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
