"""
Tests for the Annotation Store.
"""
import pytest
from datetime import date
from fastapi import HTTPException

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import annotation_data, rect
from core.errors import NotFound
from core.status import STATUS_COLORS, AnnotationStatus


class TestCreate:
    def test_round_trip(self, annotations, first_version):
        """Created record shows up in the version's list with id and createdAt."""
        created = annotations.create_annotation(annotation_data(first_version.id))
        listed = annotations.list_annotations(first_version.id)

        assert len(listed) == 1
        got = listed[0]
        assert got.id == created.id
        assert got.created_at is not None
        assert got.pdf_version_id == first_version.id
        assert got.rect.model_dump(by_alias=True) == {
            "x": 10.0, "y": 10.0, "width": 50.0, "height": 20.0, "pageNumber": 1
        }
        assert got.comment == "check tolerance"
        assert got.created_by_id == 7

    def test_defaults(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id))
        assert a.status is AnnotationStatus.NEW_COMMENT
        assert a.color == STATUS_COLORS[AnnotationStatus.NEW_COMMENT]
        assert a.task_id is None
        assert a.assigned_to is None

    def test_color_follows_status(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id, status="action_required"))
        assert a.color == STATUS_COLORS[AnnotationStatus.ACTION_REQUIRED]

    def test_explicit_color_kept(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id, color="#123456"))
        assert a.color == "#123456"

    def test_coercions(self, annotations, first_version):
        a = annotations.create_annotation(
            annotation_data(first_version.id, taskId="17", assignedTo="  ", deadline="2026-05-01")
        )
        assert a.task_id == 17
        assert a.assigned_to is None
        assert a.deadline == date(2026, 5, 1)

    def test_legacy_status(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id, status="open"))
        assert a.status is AnnotationStatus.NEW_COMMENT

    def test_missing_rect(self, annotations, first_version):
        data = annotation_data(first_version.id)
        del data["rect"]
        with pytest.raises(HTTPException) as exc:
            annotations.create_annotation(data)
        assert exc.value.status_code == 400

    def test_missing_author(self, annotations, first_version):
        data = annotation_data(first_version.id)
        del data["createdById"]
        with pytest.raises(ValueError):
            annotations.create_annotation(data)

    def test_unknown_version(self, annotations):
        with pytest.raises(NotFound):
            annotations.create_annotation(annotation_data(999))


class TestList:
    def test_unknown_version(self, annotations):
        with pytest.raises(NotFound):
            annotations.list_annotations(999)

    def test_empty_version(self, annotations, first_version):
        assert annotations.list_annotations(first_version.id) == []

    def test_annotations_stay_on_their_version(self, annotations, versions, first_version):
        annotations.create_annotation(annotation_data(first_version.id))
        v2 = versions.create_version(first_version.file_id, b"%PDF-1.4 v2", None, uploader_id=7)
        assert annotations.list_annotations(v2.id) == []

    def test_project_filter(self, annotations, first_version):
        annotations.create_annotation(annotation_data(first_version.id, projectId=3))
        annotations.create_annotation(annotation_data(first_version.id, projectId=4))
        assert len(annotations.list_annotations(first_version.id, project_id=4)) == 1

    def test_cache_hit_and_invalidation(self, annotations, first_version):
        annotations.list_annotations(first_version.id)
        annotations.list_annotations(first_version.id)
        assert annotations.cache_hits == 1

        annotations.create_annotation(annotation_data(first_version.id))
        assert len(annotations.list_annotations(first_version.id)) == 1


class TestUpdate:
    def test_resolved_sets_canonical_color(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id))
        annotations.update_annotation(a.id, {"status": "resolved"})

        got = next(x for x in annotations.list_annotations(first_version.id) if x.id == a.id)
        assert got.status is AnnotationStatus.RESOLVED
        assert got.color == STATUS_COLORS[AnnotationStatus.RESOLVED]

    def test_status_with_explicit_color(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id))
        out = annotations.update_annotation(a.id, {"status": "resolved", "color": "#000000"})
        assert out.color == "#000000"

    def test_any_status_to_any_status(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id, status="resolved"))
        for s in ("rejected", "new_comment", "other_forum", "resolved"):
            assert annotations.update_annotation(a.id, {"status": s}).status.value == s

    def test_partial(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id, assignedTo="ana"))
        out = annotations.update_annotation(a.id, {"comment": "new text"})
        assert out.comment == "new text"
        assert out.assigned_to == "ana"
        assert out.status is AnnotationStatus.NEW_COMMENT

    def test_explicit_null_clears(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id, assignedTo="ana", taskId=4))
        out = annotations.update_annotation(a.id, {"assignedTo": None, "taskId": None})
        assert out.assigned_to is None
        assert out.task_id is None

    def test_owner_fields_fixed(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id))
        out = annotations.update_annotation(a.id, {"pdfVersionId": 999, "createdById": 1})
        assert out.pdf_version_id == first_version.id
        assert out.created_by_id == 7

    def test_unknown(self, annotations):
        with pytest.raises(NotFound):
            annotations.update_annotation(999, {"comment": "x"})

    def test_unknown_status(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id))
        with pytest.raises(ValueError):
            annotations.update_annotation(a.id, {"status": "bogus"})


class TestDelete:
    def test_returns_version_id(self, annotations, first_version):
        a = annotations.create_annotation(annotation_data(first_version.id))
        annotations.list_annotations(first_version.id)  # warm the cache

        assert annotations.delete_annotation(a.id) == {"versionId": first_version.id}
        assert annotations.list_annotations(first_version.id) == []

    def test_unknown_is_not_a_no_op(self, annotations):
        with pytest.raises(NotFound):
            annotations.delete_annotation(999)


class TestVaultListings:
    def test_commented_listing(self, annotations, first_version):
        annotations.create_annotation(annotation_data(first_version.id, comment="Fix the beam"))
        annotations.create_annotation(annotation_data(first_version.id, comment=""))
        resolved = annotations.create_annotation(
            annotation_data(first_version.id, comment="done", status="resolved")
        )

        rows = annotations.list_commented()
        assert len(rows) == 2
        assert {r["file_name"] for r in rows} == {"drawing.pdf"}
        assert {r["version_number"] for r in rows} == {1}

        only_resolved = annotations.list_commented(status="resolved")
        assert [r["annotation"].id for r in only_resolved] == [resolved.id]

        by_text = annotations.list_commented(query="BEAM")
        assert [r["annotation"].comment for r in by_text] == ["Fix the beam"]

        by_file = annotations.list_commented(query="drawing")
        assert len(by_file) == 2

        assert annotations.list_commented(project_id=99) == []

    def test_assigned_feed(self, annotations, first_version):
        annotations.create_annotation(annotation_data(first_version.id, assignedTo="Ana"))
        annotations.create_annotation(annotation_data(first_version.id, assignedTo="ana", status="resolved"))
        annotations.create_annotation(annotation_data(first_version.id, assignedTo="bo"))

        feed = annotations.list_assigned("ANA")
        assert len(feed) == 1
        assert feed[0].assigned_to == "Ana"
        assert annotations.list_assigned("") == []
