"""Universal storage: a pluggable file storage facade over object stores."""

from universal_storage.common.config import Settings, get_settings
from universal_storage.services import (
    InvalidArgumentError,
    ObjectNotFoundError,
    StorageBackendNotConfiguredError,
    StorageListener,
    StoredObjectDescriptor,
    UniversalIOError,
    UniversalS3Storage,
    UniversalStorage,
    UniversalStorageError,
    build_storage,
)

__all__ = [
    "Settings",
    "get_settings",
    "build_storage",
    "UniversalStorage",
    "UniversalS3Storage",
    "StorageListener",
    "StoredObjectDescriptor",
    "UniversalStorageError",
    "InvalidArgumentError",
    "UniversalIOError",
    "ObjectNotFoundError",
    "StorageBackendNotConfiguredError",
]
