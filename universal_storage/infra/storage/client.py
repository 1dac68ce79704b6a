"""Storage client protocol and data types.

This module defines the abstract interface for object storage operations
used by the universal storage facade: single-shot puts, multipart uploads,
reads, deletes, tagging, storage-class changes and paginated listings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO, Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class ObjectMissingError(StorageError):
    """Raised when the requested object or bucket does not exist."""


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class PutResult:
    """Outcome of a write that produced a new object version."""

    etag: str | None = None
    version_id: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectSummary:
    key: str
    size_bytes: int = 0
    etag: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectListing:
    """One page of a bucket listing."""

    objects: tuple[ObjectSummary, ...] = ()
    is_truncated: bool = False
    next_continuation_token: str | None = None


@dataclass(frozen=True, slots=True)
class ObjectVersion:
    key: str
    version_id: str
    is_delete_marker: bool = False


@dataclass(frozen=True, slots=True)
class VersionListing:
    """One page of a bucket version listing (versions and delete markers)."""

    versions: tuple[ObjectVersion, ...] = ()
    is_truncated: bool = False
    next_key_marker: str | None = None
    next_version_id_marker: str | None = None


@dataclass(frozen=True, slots=True)
class WriteOptions:
    """Object attributes applied when writing.

    ``storage_class`` of ``None`` leaves the store's default in place.
    """

    encryption: bool = False
    storage_class: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    All methods raise ``StorageError`` on failure and ``ObjectMissingError``
    when the addressed object does not exist.
    """

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes | BinaryIO,
        options: WriteOptions | None = None,
    ) -> PutResult:
        """Write an object in a single request."""
        ...

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        options: WriteOptions | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            options: Encryption and content type applied at initiation.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.
        """
        ...

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload.

        Args:
            part_number: Part number (1-based, max 10000).
            body: The bytes of this part.

        Returns:
            CompletedPart carrying the ETag the store computed for the part.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> PutResult:
        """Complete a multipart upload by combining all parts.

        Returns:
            PutResult with the version identifier of the assembled object.
        """
        ...

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and release uploaded parts."""
        ...

    def change_storage_class(
        self,
        *,
        bucket: str,
        object_key: str,
        storage_class: str,
        encryption: bool = False,
    ) -> PutResult:
        """Rewrite an object in place with a new storage class."""
        ...

    def put_object_tagging(
        self,
        *,
        bucket: str,
        object_key: str,
        tags: dict[str, str],
    ) -> None:
        """Replace the tag set of an object."""
        ...

    def get_object(self, *, bucket: str, object_key: str) -> BinaryIO:
        """Return a readable stream over the object's content."""
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete the latest version of an object."""
        ...

    def delete_object_version(
        self, *, bucket: str, object_key: str, version_id: str
    ) -> None:
        """Permanently delete one version (or delete marker) of an object."""
        ...

    def list_objects(
        self,
        *,
        bucket: str,
        continuation_token: str | None = None,
        page_size: int = 1000,
    ) -> ObjectListing:
        """Return one page of the bucket's current objects."""
        ...

    def list_object_versions(
        self,
        *,
        bucket: str,
        key_marker: str | None = None,
        version_id_marker: str | None = None,
        page_size: int = 1000,
    ) -> VersionListing:
        """Return one page of the bucket's object versions and delete markers."""
        ...
