"""
Storage adapter interface for the PDF vault.
Defines the contract that all storage backends must implement.
"""

from typing import Protocol, List, Dict, Any, Optional


class StorageAdapter(Protocol):
    """
    Protocol defining the interface for all storage adapters.

    This allows swapping between SQLite, JSON files and Google
    Sheets without changing the stores or routers.

    NOTE:
    - Adapters speak in plain dicts keyed by storage column names
      (snake_case). Conversion to domain models happens in models.converters.
    - Ids are integers assigned by the adapter, monotonic per table.
    - Lookups that miss return None; mutations of a missing row raise
      core.errors.NotFound.
    """

    # ========== Files ==========

    def create_file(
        self,
        name: str,
        uploaded_by_id: int,
        file_path: str,
        project_id: Optional[int] = None,
        folder_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Register an uploaded file.

        Returns:
            The stored row (id, name, project_id, folder_id, uploaded_by_id,
            file_path, uploaded_at).
        """
        ...

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        """Fetch a file row, or None."""
        ...

    # ========== Versions ==========

    def list_versions(self, file_id: int) -> List[Dict[str, Any]]:
        """
        All version rows of a file ordered by version_number ascending.
        Empty list when the file has no versions yet.
        """
        ...

    def get_version(self, version_id: int) -> Optional[Dict[str, Any]]:
        """Fetch a version row, or None."""
        ...

    def create_version(
        self,
        file_id: int,
        file_path: str,
        uploaded_by_id: int,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Insert a version row with version_number = max(existing) + 1 (or 1).

        Raises:
            NotFound: the file does not exist
            VersionConflict: another writer took the same number first
        """
        ...

    def count_annotations_by_version(self, file_id: int) -> Dict[int, int]:
        """
        For a given file, return a mapping:
            { version_id: number_of_annotations }
        """
        ...

    # ========== Annotations ==========

    def list_annotations(
        self,
        version_id: int,
        project_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Annotation rows of one version, optionally filtered by project. No order implied."""
        ...

    def list_all_annotations(self) -> List[Dict[str, Any]]:
        """Every annotation row (vault-wide listings)."""
        ...

    def get_annotation(self, annotation_id: int) -> Optional[Dict[str, Any]]:
        """Fetch an annotation row, or None."""
        ...

    def create_annotation(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert an annotation row. The adapter assigns `id` and `created_at`.

        Raises:
            NotFound: pdf_version_id does not exist
        """
        ...

    def patch_annotation(self, annotation_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overwrite only the provided columns and return the updated row.

        Raises:
            NotFound: annotation does not exist
        """
        ...

    def delete_annotation(self, annotation_id: int) -> None:
        """
        Raises:
            NotFound: annotation does not exist
        """
        ...

    # ========== Tasks ==========

    def create_task(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a task row; the adapter assigns `id` and `created_at`."""
        ...

    def get_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        """Fetch a task row, or None."""
        ...

    # ========== Health ==========

    def ping(self) -> None:
        """Cheap round-trip to the backend; raises if it is unreachable."""
        ...
