"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, BinaryIO, Sequence
from urllib.parse import urlencode

from universal_storage.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    ObjectListing,
    ObjectMissingError,
    ObjectSummary,
    ObjectVersion,
    PutResult,
    StorageError,
    VersionListing,
    WriteOptions,
)

if TYPE_CHECKING:
    from universal_storage.common.config import Settings

SSE_ALGORITHM = "AES256"
_MISSING_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound", "NoSuchVersion"}


def _error_code(exc: Exception) -> str | None:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        code = (response.get("Error") or {}).get("Code")
        return str(code) if code is not None else None
    return None


def _wrap(message: str, exc: Exception) -> StorageError:
    if _error_code(exc) in _MISSING_CODES:
        return ObjectMissingError(f"{message}: {exc}")
    return StorageError(f"{message}: {exc}")


def _write_params(options: WriteOptions | None) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if options is None:
        return params
    if options.encryption:
        params["ServerSideEncryption"] = SSE_ALGORITHM
    if options.storage_class:
        params["StorageClass"] = options.storage_class
    if options.tags:
        params["Tagging"] = urlencode(options.tags)
    if options.content_type:
        params["ContentType"] = options.content_type
    return params


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations. Credentials come from the
    settings when both key id and secret are present, otherwise from the
    named profile or boto3's default credential chain.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Storage settings containing S3 configuration.

        Raises:
            StorageError: If boto3 is not installed.
        """
        self._settings = settings
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
            from botocore.exceptions import BotoCoreError
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "auto").strip().lower()
        timeout = float(settings.STORAGE_REQUEST_TIMEOUT_SECONDS)
        config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=timeout,
            read_timeout=timeout,
        )

        credentials: dict[str, Any] = {}
        if settings.S3_ACCESS_KEY_ID and settings.S3_SECRET_ACCESS_KEY:
            credentials = {
                "aws_access_key_id": settings.S3_ACCESS_KEY_ID,
                "aws_secret_access_key": settings.S3_SECRET_ACCESS_KEY,
            }

        try:
            session = boto3.session.Session(profile_name=settings.S3_PROFILE)
            return session.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                region_name=settings.S3_REGION,
                use_ssl=bool(settings.S3_USE_SSL),
                config=config,
                **credentials,
            )
        except BotoCoreError as exc:
            raise StorageError(f"Failed to create S3 client: {exc}") from exc

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes | BinaryIO,
        options: WriteOptions | None = None,
    ) -> PutResult:
        """Write an object in a single request."""
        params = {"Bucket": bucket, "Key": object_key, "Body": body}
        params.update(_write_params(options))
        try:
            response = self._client.put_object(**params)
        except Exception as exc:
            raise _wrap("Failed to put object", exc) from exc

        return PutResult(etag=response.get("ETag"), version_id=response.get("VersionId"))

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        options: WriteOptions | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if options is not None:
            if options.encryption:
                params["ServerSideEncryption"] = SSE_ALGORITHM
            if options.content_type:
                params["ContentType"] = options.content_type

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise _wrap("Failed to create multipart upload", exc) from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload."""
        try:
            response = self._client.upload_part(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
            )
        except Exception as exc:
            raise _wrap(f"Failed to upload part {part_number}", exc) from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError(f"S3 response missing ETag for part {part_number}")

        return CompletedPart(part_number=int(part_number), etag=str(etag))

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> PutResult:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            response = self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise _wrap("Failed to complete multipart upload", exc) from exc

        return PutResult(etag=response.get("ETag"), version_id=response.get("VersionId"))

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            self._client.abort_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
            )
        except Exception as exc:
            raise _wrap("Failed to abort multipart upload", exc) from exc

    def change_storage_class(
        self,
        *,
        bucket: str,
        object_key: str,
        storage_class: str,
        encryption: bool = False,
    ) -> PutResult:
        """Copy an object onto itself with a new storage class."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_key,
            "CopySource": {"Bucket": bucket, "Key": object_key},
            "StorageClass": storage_class,
            "MetadataDirective": "COPY",
        }
        if encryption:
            params["ServerSideEncryption"] = SSE_ALGORITHM

        try:
            response = self._client.copy_object(**params)
        except Exception as exc:
            raise _wrap("Failed to change storage class", exc) from exc

        copy_result = response.get("CopyObjectResult") or {}
        return PutResult(
            etag=copy_result.get("ETag"), version_id=response.get("VersionId")
        )

    def put_object_tagging(
        self,
        *,
        bucket: str,
        object_key: str,
        tags: dict[str, str],
    ) -> None:
        """Replace the tag set of an object."""
        tag_set = [{"Key": key, "Value": value} for key, value in tags.items()]
        try:
            self._client.put_object_tagging(
                Bucket=bucket,
                Key=object_key,
                Tagging={"TagSet": tag_set},
            )
        except Exception as exc:
            raise _wrap("Failed to tag object", exc) from exc

    def get_object(self, *, bucket: str, object_key: str) -> BinaryIO:
        """Return the streaming body of an object."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _wrap("Failed to get object", exc) from exc

        body = response.get("Body")
        if body is None:
            raise StorageError("S3 response missing Body")
        return body

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _wrap("Failed to delete object", exc) from exc

    def delete_object_version(
        self, *, bucket: str, object_key: str, version_id: str
    ) -> None:
        """Permanently delete one version of an object."""
        try:
            self._client.delete_object(
                Bucket=bucket, Key=object_key, VersionId=version_id
            )
        except Exception as exc:
            raise _wrap("Failed to delete object version", exc) from exc

    def list_objects(
        self,
        *,
        bucket: str,
        continuation_token: str | None = None,
        page_size: int = 1000,
    ) -> ObjectListing:
        """Return one page of the bucket's current objects."""
        params: dict[str, Any] = {"Bucket": bucket, "MaxKeys": int(page_size)}
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = self._client.list_objects_v2(**params)
        except Exception as exc:
            raise _wrap("Failed to list objects", exc) from exc

        objects = tuple(
            ObjectSummary(
                key=item["Key"],
                size_bytes=int(item.get("Size") or 0),
                etag=item.get("ETag"),
            )
            for item in response.get("Contents") or []
        )
        return ObjectListing(
            objects=objects,
            is_truncated=bool(response.get("IsTruncated")),
            next_continuation_token=response.get("NextContinuationToken"),
        )

    def list_object_versions(
        self,
        *,
        bucket: str,
        key_marker: str | None = None,
        version_id_marker: str | None = None,
        page_size: int = 1000,
    ) -> VersionListing:
        """Return one page of versions and delete markers."""
        params: dict[str, Any] = {"Bucket": bucket, "MaxKeys": int(page_size)}
        if key_marker:
            params["KeyMarker"] = key_marker
        if version_id_marker:
            params["VersionIdMarker"] = version_id_marker

        try:
            response = self._client.list_object_versions(**params)
        except Exception as exc:
            raise _wrap("Failed to list object versions", exc) from exc

        versions = [
            ObjectVersion(key=item["Key"], version_id=str(item["VersionId"]))
            for item in response.get("Versions") or []
        ]
        versions.extend(
            ObjectVersion(
                key=item["Key"],
                version_id=str(item["VersionId"]),
                is_delete_marker=True,
            )
            for item in response.get("DeleteMarkers") or []
        )
        return VersionListing(
            versions=tuple(versions),
            is_truncated=bool(response.get("IsTruncated")),
            next_key_marker=response.get("NextKeyMarker"),
            next_version_id_marker=response.get("NextVersionIdMarker"),
        )
