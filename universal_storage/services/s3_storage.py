"""S3 implementation of the universal storage facade.

The bucket named by ``STORAGE_ROOT`` is the storage root. Files up to the part
size go up in one ``put_object``; larger files are handed to the
:class:`MultipartUploadOrchestrator`. Folders are zero-length objects whose key
ends with ``/``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, ContextManager, Iterable

from universal_storage.common.config import Settings
from universal_storage.common.paths import (
    as_folder_key,
    basename,
    is_folder_path,
    join_key,
)
from universal_storage.infra.observability.metrics import track
from universal_storage.infra.storage.client import (
    StorageClient,
    StorageError,
    WriteOptions,
)
from universal_storage.infra.storage.s3_client import S3StorageClient
from universal_storage.services.base import StoredObjectDescriptor
from universal_storage.services.listeners import StorageListener
from universal_storage.services.multipart import MultipartUploadOrchestrator
from universal_storage.services.storage import UniversalStorage
from universal_storage.services.storage_class import StorageClass

logger = logging.getLogger(__name__)

COPY_CHUNK_BYTES = 1024 * 1024


class UniversalS3Storage(UniversalStorage):
    """Storage facade backed by one S3 bucket."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: StorageClient | None = None,
        listeners: Iterable[StorageListener] = (),
    ) -> None:
        super().__init__(settings, listeners=listeners)
        self._client = client or S3StorageClient(settings=settings)
        self._bucket = settings.STORAGE_ROOT
        self._storage_class = StorageClass.parse(settings.STORAGE_CLASS)
        self._multipart = MultipartUploadOrchestrator.from_settings(
            self._client, settings, listeners=self._listeners
        )

    @property
    def client(self) -> StorageClient:
        return self._client

    def _metrics(self, operation: str) -> ContextManager[None]:
        return track(operation, enabled=self._settings.ENABLE_METRICS)

    def _descriptor(
        self, name: str, folder: str, version_id: str | None, *, url_path: str
    ) -> StoredObjectDescriptor:
        container_path = join_key(self._bucket, folder)
        return StoredObjectDescriptor(
            name=name,
            full_url=f"{self._settings.S3_URL_PREFIX}{url_path}",
            version_id=version_id,
            container_path=container_path,
        )

    def store_file(
        self, file: str | os.PathLike[str], path: str | None = None
    ) -> StoredObjectDescriptor:
        """Store a local file under ``path`` (the bucket root when empty).

        Example: ``store_file("/var/www/index.html", "site")`` writes the key
        ``site/index.html``.

        Raises:
            InvalidArgumentError: If ``file`` is a folder or does not exist.
            UniversalIOError: If the store rejects the write.
        """
        source = Path(file)
        folder = self._validate(path or "")
        if source.is_dir():
            raise self._invalid(
                f"{source.name} is a folder. You should call the create_folder method."
            )
        if not source.is_file():
            raise self._invalid(f"{source} does not exist.")

        with self._metrics("store_file"):
            if source.stat().st_size <= self._multipart.part_size:
                return self._upload_tiny_file(source, folder)
            return self._multipart.upload(source, folder)

    def _upload_tiny_file(self, source: Path, folder: str) -> StoredObjectDescriptor:
        object_key = join_key(folder, source.name)
        options = WriteOptions(
            encryption=self._settings.STORAGE_ENCRYPTION,
            storage_class=self._storage_class.value,
            tags=dict(self._settings.STORAGE_TAGS),
        )
        try:
            self._listeners.fire("on_store_file")
            with source.open("rb") as body:
                result = self._client.put_object(
                    bucket=self._bucket,
                    object_key=object_key,
                    body=body,
                    options=options,
                )
        except Exception as exc:
            raise self._io_error(exc) from exc

        descriptor = self._descriptor(
            source.name,
            folder,
            result.version_id,
            url_path=f"{join_key(self._bucket, folder)}/{source.name}",
        )
        self._listeners.fire("on_file_stored", descriptor)
        return descriptor

    def remove_file(self, path: str) -> None:
        """Delete the latest version of the object at ``path``."""
        self._validate(path)
        if not path.strip():
            raise self._invalid("Invalid path. The path shouldn't be empty.")

        with self._metrics("remove_file"):
            try:
                self._listeners.fire("on_remove_file")
                self._client.delete_object(bucket=self._bucket, object_key=path)
            except Exception as exc:
                raise self._io_error(exc) from exc
            self._listeners.fire("on_file_removed")

    def create_folder(self, path: str) -> StoredObjectDescriptor:
        """Create a directory marker; an existing marker is overwritten."""
        self._validate(path)
        folder = join_key(path.strip())
        if not folder:
            raise self._invalid("Invalid path. The path shouldn't be empty.")

        with self._metrics("create_folder"):
            try:
                self._listeners.fire("on_create_folder")
                result = self._client.put_object(
                    bucket=self._bucket,
                    object_key=as_folder_key(folder),
                    body=b"",
                    options=WriteOptions(encryption=self._settings.STORAGE_ENCRYPTION),
                )
            except Exception as exc:
                raise self._io_error(exc) from exc

        descriptor = self._descriptor(
            folder, folder, result.version_id, url_path=join_key(self._bucket, folder)
        )
        self._listeners.fire("on_folder_created", descriptor)
        return descriptor

    def remove_folder(self, path: str) -> None:
        """Delete a directory marker. An empty path does nothing."""
        self._validate(path)
        folder = join_key(path.strip())
        if not folder:
            return

        with self._metrics("remove_folder"):
            try:
                self._listeners.fire("on_remove_folder")
                self._client.delete_object(
                    bucket=self._bucket, object_key=as_folder_key(folder)
                )
            except Exception as exc:
                raise self._io_error(exc) from exc
            self._listeners.fire("on_folder_removed")

    def _check_retrievable(self, path: str) -> bool:
        self._validate(path)
        if not path.strip():
            return False
        if is_folder_path(path):
            raise self._invalid(
                "Invalid path. Looks like you're trying to retrieve a folder."
            )
        if basename(path).strip() in {"", "."}:
            raise self._invalid("Invalid path. The path doesn't name a file.")
        return True

    def retrieve_file(self, path: str) -> Path | None:
        """Download ``path`` into the tmp directory and return the local file.

        Returns ``None`` for an empty path.
        """
        if not self._check_retrievable(path):
            return None

        tmp = Path(self._settings.STORAGE_TMP_DIR)
        destination = tmp / basename(path)
        with self._tmp_guard.retrieving(), self._metrics("retrieve_file"):
            # only the partial file is ours to remove; destination may be an
            # earlier retrieval of another key with the same basename
            partial: Path | None = None
            try:
                tmp.mkdir(parents=True, exist_ok=True)
                body = self._client.get_object(bucket=self._bucket, object_key=path)
                try:
                    with tempfile.NamedTemporaryFile(
                        dir=tmp, prefix=".retrieve-", delete=False
                    ) as out:
                        partial = Path(out.name)
                        shutil.copyfileobj(body, out, COPY_CHUNK_BYTES)
                finally:
                    body.close()
                os.replace(partial, destination)
            except Exception as exc:
                if partial is not None:
                    partial.unlink(missing_ok=True)
                raise self._io_error(exc) from exc
        return destination

    def retrieve_file_as_stream(self, path: str) -> BinaryIO | None:
        """Return a readable stream over the object; the caller closes it."""
        if not self._check_retrievable(path):
            return None

        with self._metrics("retrieve_file_as_stream"):
            try:
                return self._client.get_object(bucket=self._bucket, object_key=path)
            except Exception as exc:
                raise self._io_error(exc) from exc

    def wipe(self) -> int:
        """Delete every object, version and delete marker in the bucket.

        There is no undo. Returns the number of delete calls issued.
        """
        with self._metrics("wipe"):
            try:
                deleted = self._delete_current_objects()
                deleted += self._delete_object_versions()
            except Exception as exc:
                raise self._io_error(exc) from exc
        logger.warning(
            "bucket_wiped bucket=%s deleted=%s",
            self._bucket,
            deleted,
            extra={"extra": {"bucket": self._bucket, "deleted": deleted}},
        )
        return deleted

    def _delete_current_objects(self) -> int:
        deleted = 0
        token: str | None = None
        while True:
            listing = self._client.list_objects(
                bucket=self._bucket,
                continuation_token=token,
                page_size=self._settings.STORAGE_LIST_PAGE_SIZE,
            )
            for summary in listing.objects:
                self._client.delete_object(bucket=self._bucket, object_key=summary.key)
                deleted += 1
            if not listing.is_truncated:
                return deleted
            token = listing.next_continuation_token
            if not token:
                raise StorageError("Truncated listing without a continuation token")

    def _delete_object_versions(self) -> int:
        deleted = 0
        key_marker: str | None = None
        version_marker: str | None = None
        while True:
            listing = self._client.list_object_versions(
                bucket=self._bucket,
                key_marker=key_marker,
                version_id_marker=version_marker,
                page_size=self._settings.STORAGE_LIST_PAGE_SIZE,
            )
            for version in listing.versions:
                self._client.delete_object_version(
                    bucket=self._bucket,
                    object_key=version.key,
                    version_id=version.version_id,
                )
                deleted += 1
            if not listing.is_truncated:
                return deleted
            key_marker = listing.next_key_marker
            version_marker = listing.next_version_id_marker
            if not key_marker:
                raise StorageError("Truncated version listing without a key marker")
