# services/api/client/fallback_cache.py
"""
Fallback cache: a local key/value mirror the viewer falls back to when
the store is unreachable or the file reference has no store id.

Entries are written wholesale; the last writer wins.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from core.errors import CacheWriteError

logger = logging.getLogger(__name__)


class FallbackCache(Protocol):
    def get(self, key: str) -> Optional[Any]:
        """Stored JSON value for `key`, or None."""
        ...

    def put(self, key: str, value: Any) -> None:
        """
        Replace the value stored under `key`.

        Raises:
            CacheWriteError: the value could not be stored
        """
        ...


def _serialize(key: str, value: Any, max_bytes: Optional[int]) -> str:
    try:
        payload = json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        raise CacheWriteError(f"value for {key} is not JSON-serializable: {e}") from e
    if max_bytes is not None and len(payload.encode("utf-8")) > max_bytes:
        raise CacheWriteError(f"quota exceeded writing {key} ({len(payload)} > {max_bytes} bytes)")
    return payload


class MemoryFallbackCache:
    """In-process cache. Values are stored serialized so reads never alias writes."""

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self.max_bytes = max_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Any) -> None:
        self._data[key] = _serialize(key, value, self.max_bytes)

    def keys(self):
        return list(self._data.keys())


class JsonFileFallbackCache:
    """One JSON file per key under `directory`."""

    def __init__(self, directory: str = "data/fallback", max_bytes: Optional[int] = 5 * 1024 * 1024) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "JsonFileFallbackCache":
        return cls(settings.fallback_cache_dir, settings.fallback_cache_max_bytes)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable fallback entry {key}: {e}")
            return None

    def put(self, key: str, value: Any) -> None:
        payload = _serialize(key, value, self.max_bytes)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        with self._lock:
            try:
                with open(tmp, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp, path)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise CacheWriteError(f"failed to write {key}: {e}") from e
