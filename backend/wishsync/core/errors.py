"""Error kinds raised by the sync core.

NotFound and InvalidReference are recoverable and always reach the caller.
LocalStorageFailure is fatal: without a stable identity nothing else works.
"""


class SyncError(Exception):
    """Base class for every error raised by wishsync."""


class NotFound(SyncError):
    kind = "document"

    def __init__(self, ref: str, message: str | None = None) -> None:
        self.ref = ref
        super().__init__(message or f"{self.kind} not found: {ref!r}")


class ListNotFound(NotFound):
    kind = "list"


class ItemNotFound(NotFound):
    kind = "item"


class InvalidReference(SyncError, ValueError):
    """An operation was attempted with an empty or blank identifier."""

    def __init__(self, field: str, value: object = None) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a non-empty identifier, got {value!r}")


class TransientSyncFailure(SyncError):
    """The underlying store failed while reading or writing."""


class LookupFailed(NotFound, TransientSyncFailure):
    """A point lookup failed; callers may treat it as not-found."""

    def __init__(self, ref: str, kind: str = "document") -> None:
        self.kind = kind
        super().__init__(ref, f"{kind} lookup failed: {ref!r}")


class LocalStorageFailure(SyncError):
    """Device-local preferences could not be read or written."""


class ReservationDenied(SyncError):
    def __init__(self, item_id: str, reason: str) -> None:
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"reservation toggle denied for item {item_id!r}: {reason}")
