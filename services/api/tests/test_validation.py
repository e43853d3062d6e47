"""
Tests for validation functions.

Run with: pytest tests/test_validation.py -v
"""
import pytest
from fastapi import HTTPException

import sys
import os
from datetime import date
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.validation import (
    MIN_DRAG_PX,
    coerce_annotation_fields,
    coerce_assigned_to,
    coerce_deadline,
    coerce_task_id,
    is_above_min_drag,
    validate_rect,
)
from models import Rect


class TestValidateRect:
    """Tests for annotation rectangle validation."""

    def test_valid_rect(self):
        """Valid rectangle comes back in canonical form."""
        out = validate_rect({"x": 10, "y": 10, "width": 50, "height": 20, "pageNumber": 2})
        assert out == {"x": 10.0, "y": 10.0, "width": 50.0, "height": 20.0, "pageNumber": 2}

    def test_accepts_model_and_snake_case(self):
        """Pydantic Rect and page_number spelling are both accepted."""
        model = Rect(x=1, y=2, width=3, height=4, page_number=5)
        assert validate_rect(model)["pageNumber"] == 5
        assert validate_rect({"x": 1, "y": 2, "width": 3, "height": 4, "page_number": 5})["pageNumber"] == 5

    def test_missing_rect(self):
        """Absent rect should raise."""
        with pytest.raises(HTTPException) as exc:
            validate_rect(None)
        assert exc.value.status_code == 400

    def test_missing_fields(self):
        """Each missing key is reported."""
        with pytest.raises(HTTPException) as exc:
            validate_rect({"x": 1, "y": 1})
        assert exc.value.status_code == 400
        assert "width" in exc.value.detail
        assert "pageNumber" in exc.value.detail

    def test_zero_size(self):
        """Zero width or height should raise."""
        with pytest.raises(HTTPException) as exc:
            validate_rect({"x": 1, "y": 1, "width": 0, "height": 5, "pageNumber": 1})
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            validate_rect({"x": 1, "y": 1, "width": 5, "height": -1, "pageNumber": 1})
        assert exc.value.status_code == 400

    def test_negative_origin(self):
        """x/y below zero should raise."""
        with pytest.raises(HTTPException) as exc:
            validate_rect({"x": -1, "y": 1, "width": 5, "height": 5, "pageNumber": 1})
        assert exc.value.status_code == 400

    def test_page_is_one_based(self):
        """pageNumber 0 should raise."""
        with pytest.raises(HTTPException) as exc:
            validate_rect({"x": 1, "y": 1, "width": 5, "height": 5, "pageNumber": 0})
        assert exc.value.status_code == 400

    def test_non_numeric(self):
        """Non-numeric fields should raise."""
        with pytest.raises(HTTPException) as exc:
            validate_rect({"x": "a", "y": 1, "width": 5, "height": 5, "pageNumber": 1})
        assert exc.value.status_code == 400


class TestMinDrag:
    """Tests for the minimum marker size."""

    def test_threshold_is_ten_pixels(self):
        assert MIN_DRAG_PX == 10

    def test_small_drag_discarded(self):
        """A 5x5 drag at scale 1 is too small."""
        assert not is_above_min_drag(5, 5)

    def test_exactly_threshold_discarded(self):
        """The size must clear the threshold, not just reach it."""
        assert not is_above_min_drag(10, 50)

    def test_large_drag_kept(self):
        assert is_above_min_drag(50, 20)

    def test_scale_applies(self):
        """At 2x zoom a 6-unit marker is 12 device pixels."""
        assert is_above_min_drag(6, 6, scale=2.0)
        assert not is_above_min_drag(6, 6, scale=1.0)

    def test_bad_scale_treated_as_one(self):
        assert not is_above_min_drag(5, 5, scale=0)


class TestCoerceTaskId:
    """Tests for taskId coercion."""

    def test_none(self):
        assert coerce_task_id(None) is None

    def test_int(self):
        assert coerce_task_id(17) == 17

    def test_numeric_string(self):
        """Numeric strings become ints."""
        assert coerce_task_id("17") == 17
        assert coerce_task_id(" 17 ") == 17

    def test_blank_string(self):
        assert coerce_task_id("") is None

    def test_non_numeric_string(self):
        """Non-numeric strings are rejected."""
        with pytest.raises(HTTPException) as exc:
            coerce_task_id("abc")
        assert exc.value.status_code == 400

    def test_bool_rejected(self):
        with pytest.raises(HTTPException):
            coerce_task_id(True)


class TestCoerceOtherFields:
    """Tests for assignedTo and deadline coercion."""

    def test_assigned_to_blank_is_none(self):
        assert coerce_assigned_to("   ") is None
        assert coerce_assigned_to(None) is None
        assert coerce_assigned_to(" ana ") == "ana"

    def test_deadline_date_string(self):
        assert coerce_deadline("2026-05-01") == date(2026, 5, 1)

    def test_deadline_datetime_string(self):
        assert coerce_deadline("2026-05-01T12:00:00Z") == date(2026, 5, 1)

    def test_deadline_invalid(self):
        with pytest.raises(HTTPException) as exc:
            coerce_deadline("next friday")
        assert exc.value.status_code == 400


class TestCoerceAnnotationFields:
    """Tests for the create/update payload rules."""

    def test_create_fills_explicit_nulls(self):
        """Absent taskId/assignedTo become explicit None on create."""
        out = coerce_annotation_fields(
            {"rect": {"x": 1, "y": 1, "width": 20, "height": 20, "pageNumber": 1}},
            partial=False,
        )
        assert "taskId" in out and out["taskId"] is None
        assert "assignedTo" in out and out["assignedTo"] is None

    def test_create_requires_rect(self):
        with pytest.raises(HTTPException) as exc:
            coerce_annotation_fields({"comment": "x"}, partial=False)
        assert exc.value.status_code == 400

    def test_partial_leaves_absent_fields_out(self):
        """Partial updates only carry the keys that were sent."""
        out = coerce_annotation_fields({"comment": "hi"}, partial=True)
        assert out == {"comment": "hi"}

    def test_partial_coerces_present_fields(self):
        out = coerce_annotation_fields({"taskId": "9", "deadline": "2026-01-02"}, partial=True)
        assert out["taskId"] == 9
        assert out["deadline"] == date(2026, 1, 2)

    def test_none_comment_becomes_empty(self):
        out = coerce_annotation_fields({"comment": None}, partial=True)
        assert out["comment"] == ""

