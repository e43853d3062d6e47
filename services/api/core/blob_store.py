# services/api/core/blob_store.py
from __future__ import annotations

import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class BlobStore:
    """
    Local-disk storage for version binaries.

    Paths handed out are relative to `root` so the database never records
    machine-specific locations.
    """

    def __init__(self, root: str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _abs(self, rel_path: str) -> Path:
        p = (self.root / rel_path).resolve()
        if self.root.resolve() not in p.parents:
            raise ValueError(f"blob path escapes storage root: {rel_path}")
        return p

    def write(self, owner, data: bytes, suffix: str = ".pdf") -> str:
        """
        Write `data` atomically and return its relative path.

        `owner` is a file id, or "uploads" for the first version of a file
        that has no id yet.

        The temp file is renamed into place only after the full payload is
        on disk, so a failed write leaves nothing behind.
        """
        rel = f"{owner}/{uuid.uuid4().hex}{suffix}"
        target = self._abs(rel)
        target.parent.mkdir(parents=True, exist_ok=True)

        tmp = target.with_suffix(target.suffix + ".tmp")
        try:
            with open(tmp, "wb") as f:
                f.write(data)
            tmp.replace(target)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        return rel

    def read(self, rel_path: str) -> bytes:
        with open(self._abs(rel_path), "rb") as f:
            return f.read()

    def exists(self, rel_path: str) -> bool:
        try:
            return self._abs(rel_path).is_file()
        except ValueError:
            return False

    def delete(self, rel_path: str) -> None:
        try:
            self._abs(rel_path).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove blob {rel_path}: {e}")
