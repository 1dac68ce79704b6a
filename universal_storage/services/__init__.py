from .base import (
    InvalidArgumentError,
    ObjectNotFoundError,
    StorageBackendNotConfiguredError,
    StoredObjectDescriptor,
    UniversalIOError,
    UniversalStorageError,
)
from .listeners import ListenerRegistry, StorageListener
from .multipart import (
    MultipartUploadOrchestrator,
    PartRange,
    UploadSession,
    UploadState,
    plan_parts,
)
from .s3_storage import UniversalS3Storage
from .storage import UniversalStorage, build_storage
from .storage_class import StorageClass

__all__ = [
    "UniversalStorage",
    "UniversalS3Storage",
    "build_storage",
    "MultipartUploadOrchestrator",
    "UploadSession",
    "UploadState",
    "PartRange",
    "plan_parts",
    "StorageListener",
    "ListenerRegistry",
    "StorageClass",
    "StoredObjectDescriptor",
    "UniversalStorageError",
    "InvalidArgumentError",
    "UniversalIOError",
    "ObjectNotFoundError",
    "StorageBackendNotConfiguredError",
]
