"""
Validation utilities for PDF annotations.
Ensures data integrity and provides clear error messages.
"""
from datetime import date, datetime
from typing import Any, Dict, Optional
from fastapi import HTTPException

# A drag must clear this many device pixels in both directions to
# become an annotation.
MIN_DRAG_PX = 10.0

RECT_KEYS = ("x", "y", "width", "height", "pageNumber")


def is_above_min_drag(width: float, height: float, scale: float = 1.0) -> bool:
    """
    True when a marker drawn at `scale` is large enough to keep.

    `width`/`height` are in unscaled page coordinates, so the on-screen
    size is `width * scale`.
    """
    if scale <= 0:
        scale = 1.0
    threshold = MIN_DRAG_PX / scale
    return width > threshold and height > threshold


def validate_rect(rect: Any) -> Dict[str, Any]:
    """
    Validate an annotation rectangle and return it in canonical form.

    Rules:
    - rect must be present with x, y, width, height, pageNumber
    - x, y must be >= 0 (unscaled page coordinates)
    - width, height must be > 0
    - pageNumber must be a 1-based page index

    Page count is checked by the caller, not here.

    Raises:
        HTTPException: 400 if validation fails
    """
    if rect is None:
        raise HTTPException(status_code=400, detail="rect is required")
    if hasattr(rect, "model_dump"):
        rect = rect.model_dump(by_alias=True)
    if not isinstance(rect, dict):
        raise HTTPException(status_code=400, detail="rect must be an object")

    # snake_case callers
    if "pageNumber" not in rect and "page_number" in rect:
        rect = {**rect, "pageNumber": rect["page_number"]}

    missing = [k for k in RECT_KEYS if rect.get(k) is None]
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"rect is missing fields: {', '.join(missing)}"
        )

    try:
        x = float(rect["x"])
        y = float(rect["y"])
        width = float(rect["width"])
        height = float(rect["height"])
        page_number = int(rect["pageNumber"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="rect fields must be numeric")

    if x < 0 or y < 0:
        raise HTTPException(
            status_code=400,
            detail=f"rect x/y must be >= 0, got ({x}, {y})"
        )
    if width <= 0 or height <= 0:
        raise HTTPException(
            status_code=400,
            detail=f"rect width/height must be > 0, got ({width}, {height})"
        )
    if page_number < 1:
        raise HTTPException(
            status_code=400,
            detail=f"rect pageNumber must be >= 1, got {page_number}"
        )

    return {
        "x": x,
        "y": y,
        "width": width,
        "height": height,
        "pageNumber": page_number,
    }


def coerce_task_id(value: Any) -> Optional[int]:
    """
    Normalize a task reference to an integer id or None.

    Strings that parse as integers ("17", " 17 ") become 17.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail="taskId must be an integer")
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"taskId must be an integer, got {value!r}"
        )


def coerce_assigned_to(value: Any) -> Optional[str]:
    """Treat None, empty and whitespace-only strings the same (None)."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def coerce_deadline(value: Any) -> Optional[date]:
    """Accept a date, datetime or ISO string ("2026-05-01", "2026-05-01T12:00:00Z")."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        if len(s) == 10:
            return date.fromisoformat(s)
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"deadline must be an ISO date, got {value!r}"
        )


def coerce_annotation_fields(data: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    """
    Apply the annotation coercion rules to a create/update payload.

    - present `rect` is validated
    - present `taskId` / `assignedTo` / `deadline` are coerced
    - on create (partial=False) absent `taskId` / `assignedTo` become an
      explicit None so serializers never drop them
    """
    out = dict(data)

    if "rect" in out:
        out["rect"] = validate_rect(out["rect"])
    elif not partial:
        raise HTTPException(status_code=400, detail="rect is required")

    for key, coerce in (
        ("taskId", coerce_task_id),
        ("assignedTo", coerce_assigned_to),
        ("deadline", coerce_deadline),
    ):
        if key in out:
            out[key] = coerce(out[key])
        elif not partial and key != "deadline":
            out[key] = None

    if "comment" in out and out["comment"] is None:
        out["comment"] = ""

    return out
