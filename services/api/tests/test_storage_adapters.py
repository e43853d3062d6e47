"""
Tests for the local storage adapters (SQLite and JSON files).

Both must honour the same contract: integer ids, NotFound on mutations of
missing rows, version numbers unique per file.
"""
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError

from adapters.sqlite import pdf_versions
from core.errors import NotFound


def _file(storage, name="a.pdf"):
    return storage.create_file(name=name, uploaded_by_id=1, file_path=f"uploads/{name}", project_id=3)


def _annotation_row(version_id, **kw):
    row = {
        "pdf_version_id": version_id,
        "project_id": 3,
        "rect": {"x": 1, "y": 2, "width": 30, "height": 40, "pageNumber": 1},
        "color": "#3B82F6",
        "comment": "",
        "status": "new_comment",
        "created_by_id": 1,
        "assigned_to": None,
        "task_id": None,
    }
    row.update(kw)
    return row


class TestFiles:
    def test_create_and_get(self, storage):
        f = _file(storage)
        assert isinstance(f["id"], int)
        got = storage.get_file(f["id"])
        assert got["name"] == "a.pdf"
        assert got["project_id"] == 3

    def test_missing(self, storage):
        assert storage.get_file(999) is None


class TestVersions:
    def test_numbers_are_contiguous(self, storage):
        f = _file(storage)
        for i in range(3):
            storage.create_version(f["id"], f"p{i}", uploaded_by_id=1)
        numbers = [v["version_number"] for v in storage.list_versions(f["id"])]
        assert numbers == [1, 2, 3]

    def test_numbering_is_per_file(self, storage):
        a, b = _file(storage, "a.pdf"), _file(storage, "b.pdf")
        storage.create_version(a["id"], "p", uploaded_by_id=1)
        storage.create_version(a["id"], "p", uploaded_by_id=1)
        v = storage.create_version(b["id"], "p", uploaded_by_id=1)
        assert v["version_number"] == 1

    def test_metadata_round_trip(self, storage):
        f = _file(storage)
        v = storage.create_version(f["id"], "p", uploaded_by_id=1, metadata={"originalFilename": "x.pdf"})
        assert storage.get_version(v["id"])["metadata"] == {"originalFilename": "x.pdf"}

    def test_unknown_file(self, storage):
        with pytest.raises(NotFound):
            storage.create_version(404, "p", uploaded_by_id=1)

    def test_comment_counts(self, storage):
        f = _file(storage)
        v1 = storage.create_version(f["id"], "p", uploaded_by_id=1)
        v2 = storage.create_version(f["id"], "p", uploaded_by_id=1)
        storage.create_annotation(_annotation_row(v1["id"]))
        storage.create_annotation(_annotation_row(v1["id"]))
        storage.create_annotation(_annotation_row(v2["id"]))
        assert storage.count_annotations_by_version(f["id"]) == {v1["id"]: 2, v2["id"]: 1}


class TestSqliteUniqueness:
    def test_duplicate_number_rejected(self, sqlite_storage):
        """The database refuses a second row with the same (file, number)."""
        f = _file(sqlite_storage)
        sqlite_storage.create_version(f["id"], "p", uploaded_by_id=1)

        with pytest.raises(IntegrityError):
            with sqlite_storage.engine.begin() as conn:
                conn.execute(
                    insert(pdf_versions).values(
                        file_id=f["id"], version_number=1, file_path="p", uploaded_by_id=1
                    )
                )
        assert [v["version_number"] for v in sqlite_storage.list_versions(f["id"])] == [1]


class TestAnnotations:
    def test_create_assigns_id_and_timestamp(self, storage):
        f = _file(storage)
        v = storage.create_version(f["id"], "p", uploaded_by_id=1)
        row = storage.create_annotation(_annotation_row(v["id"]))
        assert isinstance(row["id"], int)
        assert row["created_at"]

    def test_create_on_unknown_version(self, storage):
        with pytest.raises(NotFound):
            storage.create_annotation(_annotation_row(999))

    def test_project_filter(self, storage):
        f = _file(storage)
        v = storage.create_version(f["id"], "p", uploaded_by_id=1)
        storage.create_annotation(_annotation_row(v["id"], project_id=3))
        storage.create_annotation(_annotation_row(v["id"], project_id=4))
        assert len(storage.list_annotations(v["id"])) == 2
        assert len(storage.list_annotations(v["id"], project_id=4)) == 1

    def test_patch_is_partial(self, storage):
        f = _file(storage)
        v = storage.create_version(f["id"], "p", uploaded_by_id=1)
        row = storage.create_annotation(_annotation_row(v["id"], comment="before"))
        out = storage.patch_annotation(row["id"], {"status": "resolved"})
        assert out["status"] == "resolved"
        assert out["comment"] == "before"

    def test_patch_missing(self, storage):
        with pytest.raises(NotFound):
            storage.patch_annotation(999, {"comment": "x"})

    def test_delete(self, storage):
        f = _file(storage)
        v = storage.create_version(f["id"], "p", uploaded_by_id=1)
        row = storage.create_annotation(_annotation_row(v["id"]))
        storage.delete_annotation(row["id"])
        assert storage.get_annotation(row["id"]) is None
        with pytest.raises(NotFound):
            storage.delete_annotation(row["id"])


class TestTasks:
    def test_create_and_get(self, storage):
        t = storage.create_task({"title": "Fix", "description": "", "source_annotation_id": 1})
        assert storage.get_task(t["id"])["title"] == "Fix"
        assert storage.get_task(999) is None

    def test_ping(self, storage):
        storage.ping()
