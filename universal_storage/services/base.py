from __future__ import annotations

from dataclasses import dataclass


class UniversalStorageError(Exception):
    """Base class for storage facade exceptions."""


class InvalidArgumentError(UniversalStorageError, ValueError):
    """Raised when an operation receives a path or file it cannot act on."""


class UniversalIOError(UniversalStorageError):
    """Raised when the underlying object store or local filesystem fails.

    The message of the low-level error is preserved; its type is not.
    """


class ObjectNotFoundError(UniversalIOError):
    """Raised when the addressed object does not exist."""


class StorageBackendNotConfiguredError(UniversalStorageError):
    """Raised when the storage backend is not properly configured."""


@dataclass(frozen=True, slots=True)
class StoredObjectDescriptor:
    """What a successful store or folder creation produced."""

    name: str
    full_url: str
    version_id: str | None
    container_path: str
