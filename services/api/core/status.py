"""
Annotation status labels and their display colours.

Status is a label, not a workflow gate: any status may move to any other.
"""
from enum import Enum
from typing import Any, Dict, Optional


class AnnotationStatus(str, Enum):
    NEW_COMMENT = "new_comment"
    ACTION_REQUIRED = "action_required"
    REJECTED = "rejected"
    NEW_REVIEW = "new_review"
    OTHER_FORUM = "other_forum"
    RESOLVED = "resolved"


DEFAULT_STATUS = AnnotationStatus.NEW_COMMENT

# resolved reads as done, action_required/rejected as urgent
STATUS_COLORS: Dict[AnnotationStatus, str] = {
    AnnotationStatus.NEW_COMMENT: "#3B82F6",      # blue
    AnnotationStatus.RESOLVED: "#22C55E",         # green
    AnnotationStatus.ACTION_REQUIRED: "#EF4444",  # red
    AnnotationStatus.REJECTED: "#DC2626",         # red
    AnnotationStatus.NEW_REVIEW: "#EAB308",       # yellow
    AnnotationStatus.OTHER_FORUM: "#FACC15",      # yellow
}

# Older rows and cache entries still carry the first-generation labels.
LEGACY_STATUS_ALIASES: Dict[str, AnnotationStatus] = {
    "open": AnnotationStatus.NEW_COMMENT,
    "reviewing": AnnotationStatus.NEW_REVIEW,
}


def coerce_status(value: Any) -> AnnotationStatus:
    """
    Accept an AnnotationStatus, its string value or a legacy alias.

    Raises:
        ValueError: unknown status label
    """
    if isinstance(value, AnnotationStatus):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_STATUS

    raw = str(value).strip().lower()
    if raw in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[raw]
    try:
        return AnnotationStatus(raw)
    except ValueError:
        allowed = ", ".join(s.value for s in AnnotationStatus)
        raise ValueError(f"status must be one of {allowed}, got {value!r}")


def color_for_status(status: Any) -> str:
    return STATUS_COLORS[coerce_status(status)]


def resolve_color(status: Any, override: Optional[str] = None) -> str:
    """Canonical colour for `status` unless the caller passed an explicit one."""
    if override:
        return override
    return color_for_status(status)
