"""
Error taxonomy for the PDF version/annotation subsystem.

Stores raise these; routers translate them to HTTP status codes and the
sync coordinator turns them into fallback actions.
"""


class VaultError(Exception):
    """Base class for all domain errors."""


class NotFound(VaultError, LookupError):
    """Referenced file, version, annotation or task does not exist."""

    def __init__(self, kind: str, ident) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class Unresolvable(VaultError):
    """
    The opaque file reference cannot be mapped to a numeric store id.

    Not a failure: it is the trigger for using the fallback cache.
    """

    def __init__(self, file_ref: str) -> None:
        self.file_ref = file_ref
        super().__init__(f"file reference {file_ref!r} has no numeric store id")


class StoreUnavailable(VaultError):
    """Network or database failure on an otherwise valid store call."""


class VersionConflict(VaultError):
    """Two writers raced for the same version number of a file."""

    def __init__(self, file_id: int, version_number: int) -> None:
        self.file_id = file_id
        self.version_number = version_number
        super().__init__(f"version {version_number} of file {file_id} already exists")


class OrphanedLink(VaultError):
    """A task was created but the link back to its annotation could not be written."""

    def __init__(self, annotation_id: int, task_id: int) -> None:
        self.annotation_id = annotation_id
        self.task_id = task_id
        super().__init__(f"task {task_id} created but annotation {annotation_id} was not linked")


class CacheWriteError(VaultError):
    """The fallback cache rejected a write (quota exceeded, disk error...)."""


class AlreadyPromoted(VaultError):
    """The annotation is already linked to a task that still exists."""

    def __init__(self, annotation_id: int, task_id: int) -> None:
        self.annotation_id = annotation_id
        self.task_id = task_id
        super().__init__(f"annotation {annotation_id} is already linked to task {task_id}")


def http_status_for(exc: Exception) -> int:
    """HTTP status code a router should answer with for a domain error."""
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (VersionConflict, AlreadyPromoted)):
        return 409
    if isinstance(exc, Unresolvable):
        return 400
    if isinstance(exc, StoreUnavailable):
        return 503
    return 500
