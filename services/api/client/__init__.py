"""
Client-side sync for the PDF viewer: store client, fallback cache and
the coordinator that switches between them.
"""
from .coordinator import SAVE_FAILED_MESSAGE, RawFile, SyncCoordinator
from .fallback_cache import FallbackCache, JsonFileFallbackCache, MemoryFallbackCache
from .file_ref import (
    annotations_key,
    consistent_file_ref,
    latest_cached_version,
    resolve_file_id,
    versions_key,
)
from .records import AnnotationEntry, SavePhase, SaveResult, VersionEntry
from .store_client import HttpStoreClient, StoreClient

__all__ = [
    "SAVE_FAILED_MESSAGE",
    "RawFile",
    "SyncCoordinator",
    "FallbackCache",
    "JsonFileFallbackCache",
    "MemoryFallbackCache",
    "annotations_key",
    "consistent_file_ref",
    "latest_cached_version",
    "resolve_file_id",
    "versions_key",
    "AnnotationEntry",
    "SavePhase",
    "SaveResult",
    "VersionEntry",
    "HttpStoreClient",
    "StoreClient",
]
