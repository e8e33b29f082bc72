"""Error taxonomy shared by the source registry, fetcher and stores.

- ValidationError: malformed or incomplete input, rejected before persistence
- ProtectedEntityError: mutation refused on a seed/default source
- SourceNotFoundError: unknown source id
- PersistenceError: storage-layer failure, surfaced to the caller
- FetchError: outbound feed fetch failure, absorbed into per-source state
"""


class MonitorError(Exception):
    """Base class for news-monitor errors."""


class ValidationError(MonitorError):
    """Raised when a source draft or patch is malformed or incomplete."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ProtectedEntityError(MonitorError):
    """Raised when deleting a source flagged as a default/seed source."""

    def __init__(self, source_id: str):
        super().__init__(f"Source {source_id!r} is a default source and cannot be deleted")
        self.source_id = source_id


class SourceNotFoundError(MonitorError):
    """Raised when an operation references an unknown source id."""

    def __init__(self, source_id: str):
        super().__init__(f"Source {source_id!r} not found")
        self.source_id = source_id


class PersistenceError(MonitorError):
    """Raised when the storage layer fails during a read or mutation."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class FetchError(MonitorError):
    """Raised when a feed cannot be fetched or parsed."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
