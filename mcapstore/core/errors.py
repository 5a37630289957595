"""
Error taxonomy for the storage engine and the definition resolver.

Every error carries an ErrorKind so callers can tell fatal failures from the
locally recovered ones without inspecting the concrete class.
"""

from enum import Enum


class ErrorKind(Enum):
    """Classes of failure the storage plugin distinguishes."""

    USAGE = "usage"
    IO = "io"
    MISSING_DEFINITION = "missing_definition"
    INTERNAL = "internal"


class StorageError(Exception):
    """Base class for all storage plugin errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    @property
    def is_fatal(self) -> bool:
        """Whether the error must be surfaced to the caller."""
        return self.kind is not ErrorKind.MISSING_DEFINITION


class InvalidResourceNameError(StorageError, ValueError):
    """Raised when a type name is not of the form package/[msg/]Type."""

    kind = ErrorKind.USAGE


class UnknownTopicError(StorageError):
    """Raised when writing to a topic that was never created."""

    kind = ErrorKind.USAGE


class UnsupportedReadOrderError(StorageError):
    """Raised for read orders the container cannot produce."""

    kind = ErrorKind.USAGE


class NoNextMessageError(StorageError):
    """Raised by read_next() when the iterator is exhausted."""

    kind = ErrorKind.USAGE


class ContainerOpenError(StorageError):
    """Raised when the container or its sink cannot be opened."""

    kind = ErrorKind.IO


class ContainerReadError(StorageError):
    """Raised when the summary or index of a container cannot be parsed."""

    kind = ErrorKind.IO


class ContainerWriteError(StorageError):
    """Raised when the codec fails to append a record."""

    kind = ErrorKind.IO


class SyncError(StorageError):
    """Raised when forcing written data to disk fails."""

    kind = ErrorKind.IO


class DefinitionNotFoundError(StorageError):
    """Raised when a message definition file cannot be located or read."""

    kind = ErrorKind.MISSING_DEFINITION


class PackageNotFoundError(DefinitionNotFoundError):
    """Raised when a package has no share directory."""
    pass


class InternalConsistencyError(StorageError):
    """Raised when the engine's own bookkeeping disagrees with itself."""

    kind = ErrorKind.INTERNAL


class InvalidFilterError(StorageError, ValueError):
    """Raised when a topic filter regex does not compile."""

    kind = ErrorKind.USAGE


class PluginNotFoundError(StorageError, LookupError):
    """Raised when no storage plugin is registered under an identifier."""

    kind = ErrorKind.USAGE
