"""Object storage abstraction layer.

This module provides a protocol-based abstraction for object storage backends,
enabling support for S3, MinIO, and other S3-compatible services.
"""

from .client import (
    CompletedPart,
    MultipartUpload,
    ObjectListing,
    ObjectMissingError,
    ObjectSummary,
    ObjectVersion,
    PutResult,
    StorageClient,
    StorageError,
    VersionListing,
    WriteOptions,
)

__all__ = [
    "CompletedPart",
    "MultipartUpload",
    "ObjectListing",
    "ObjectMissingError",
    "ObjectSummary",
    "ObjectVersion",
    "PutResult",
    "StorageClient",
    "StorageError",
    "VersionListing",
    "WriteOptions",
]
