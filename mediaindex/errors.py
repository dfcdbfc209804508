"""Error taxonomy shared by the store, scanner, extractor and search layers."""

from pathlib import Path


class MediaIndexError(Exception):
    """Base class for all mediaindex errors."""


class StoreTransactionFailed(MediaIndexError):
    """Raised when a store transaction could not be committed."""


class ExtractionFailed(MediaIndexError):
    """Raised when a metadata reader cannot read a file at all."""

    def __init__(self, path: str | Path, reason: str):
        super().__init__(f"Metadata extraction failed for {path}: {reason}")
        self.path = str(path)
        self.reason = reason


class InvalidQuery(MediaIndexError):
    """Raised when a query is rejected before execution."""

    def __init__(self, message: str, attribute: str | None = None):
        super().__init__(message)
        self.attribute = attribute


class ResultSetTooLarge(MediaIndexError):
    """Raised when a query matches more entries than the configured cap."""

    def __init__(self, total: int, cap: int):
        super().__init__(
            f"Query matches {total:,} entries, more than the limit of {cap:,}. "
            "Add predicates or narrow the media types."
        )
        self.total = total
        self.cap = cap


class DuplicateName(MediaIndexError):
    """Raised when creating a tag or saved search whose name already exists."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"A {kind} named {name!r} already exists")
        self.kind = kind
        self.name = name


class DatabaseBusy(MediaIndexError):
    """Raised when a write is attempted while a background scan is active."""

    def __init__(self, operation: str):
        super().__init__(f"Database busy: cannot {operation} while a scan is running")
        self.operation = operation


class SchemaVersionMismatch(MediaIndexError):
    """Raised at startup when the database schema version is not supported."""

    def __init__(self, found: int, expected: int, path: str | Path):
        super().__init__(
            f"Database {path} has schema version {found}, this version of mediaindex "
            f"expects {expected} and has no migration for it"
        )
        self.found = found
        self.expected = expected
        self.path = str(path)


class NotFound(MediaIndexError, LookupError):
    """Raised when a referenced tag, entry or saved search does not exist."""
