# services/api/client/file_ref.py
"""
File reference helpers for the viewer.

The viewer is handed an opaque file reference. When it is a numeric store
id the version/annotation store is used; anything else can only live in
the fallback cache.
"""
import re
import zlib
from typing import Any, Dict, Optional

from core.errors import Unresolvable

VERSIONS_KEY_PREFIX = "pdf_versions_"
ANNOTATIONS_KEY_PREFIX = "pdf_annotations_"


def resolve_file_id(file_ref: Any) -> int:
    """
    Map a file reference to a numeric store id.

    Raises:
        Unresolvable: the reference is not a positive integer
    """
    if isinstance(file_ref, bool):
        raise Unresolvable(str(file_ref))
    if isinstance(file_ref, int):
        if file_ref < 1:
            raise Unresolvable(str(file_ref))
        return file_ref
    s = str(file_ref or "").strip()
    if not s.isdigit() or int(s) < 1:
        raise Unresolvable(s)
    return int(s)


def versions_key(file_ref: Any) -> str:
    return f"{VERSIONS_KEY_PREFIX}{file_ref}"


def annotations_key(file_ref: Any) -> str:
    return f"{ANNOTATIONS_KEY_PREFIX}{file_ref}"


def consistent_file_ref(filename: str) -> str:
    """
    Deterministic cache reference for a file that has no store id yet.

    Same name, same reference, across sessions. The checksum keeps names
    that normalise to the same slug apart.
    """
    raw = (filename or "").strip()
    slug = re.sub(r"[^a-z0-9]+", "_", raw.lower()).strip("_")[:40] or "file"
    checksum = zlib.crc32(raw.encode("utf-8"))
    return f"file_{slug}_{checksum:08x}"


def latest_cached_version(cache, file_ref: Any) -> Optional[Dict[str, Any]]:
    """Highest-numbered cached version entry for `file_ref`, if any."""
    entries = cache.get(versions_key(file_ref)) or []
    best = None
    for entry in entries:
        try:
            number = int(entry.get("versionNumber") or 0)
        except (TypeError, ValueError):
            continue
        if best is None or number > int(best.get("versionNumber") or 0):
            best = entry
    return best
