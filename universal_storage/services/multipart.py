"""Multipart upload orchestration.

This module uploads files larger than the part-size threshold as a
sequence of fixed-size parts, assembles them into one object and applies the
configured storage class and tags. Any failure after the session is opened
aborts it so that no uploaded-but-uncommitted parts are left behind.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Callable

from prometheus_client import Counter

from universal_storage.common.config import DEFAULT_S3_URL_PREFIX, MIB
from universal_storage.common.logging import WORKER_THREAD_PREFIX
from universal_storage.common.paths import InvalidPathError, join_key, validate_path
from universal_storage.infra.observability.metrics import (
    MULTIPART_ABORTS,
    MULTIPART_PARTS,
    track,
)
from universal_storage.infra.storage.client import (
    CompletedPart,
    PutResult,
    StorageClient,
    WriteOptions,
)
from universal_storage.services.base import (
    InvalidArgumentError,
    StoredObjectDescriptor,
    UniversalIOError,
)
from universal_storage.services.listeners import ListenerRegistry
from universal_storage.services.storage_class import StorageClass

if TYPE_CHECKING:
    from universal_storage.common.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE_BYTES = 5 * MIB
# Maximum part number allowed by S3
MAX_PART_NUMBER = 10000


class UploadState(str, Enum):
    IDLE = "idle"
    INITIATED = "initiated"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"


_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.IDLE: frozenset({UploadState.INITIATED}),
    UploadState.INITIATED: frozenset({UploadState.UPLOADING, UploadState.ABORTING}),
    UploadState.UPLOADING: frozenset({UploadState.COMPLETING, UploadState.ABORTING}),
    # completing covers assemble, reclassify and tag; all abort on failure
    UploadState.COMPLETING: frozenset({UploadState.COMPLETED, UploadState.ABORTING}),
    UploadState.ABORTING: frozenset({UploadState.ABORTED}),
    UploadState.COMPLETED: frozenset(),
    UploadState.ABORTED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class PartRange:
    """Byte range ``[offset, offset + size)`` uploaded as one part."""

    part_number: int
    offset: int
    size: int


def plan_parts(total_size: int, part_size: int) -> list[PartRange]:
    """Split ``total_size`` bytes into contiguous parts numbered from 1.

    Every part is ``part_size`` bytes except the last, which holds the
    remainder.
    """
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    if total_size < 0:
        raise ValueError("total_size must not be negative")
    ranges = [
        PartRange(
            part_number=index + 1,
            offset=offset,
            size=min(part_size, total_size - offset),
        )
        for index, offset in enumerate(range(0, total_size, part_size))
    ]
    if len(ranges) > MAX_PART_NUMBER:
        raise ValueError(
            f"{total_size} bytes at {part_size} bytes per part needs {len(ranges)} "
            f"parts, more than the {MAX_PART_NUMBER} allowed"
        )
    return ranges


@dataclass
class UploadSession:
    """State of one multipart upload, from initiation to commit or abort."""

    bucket: str
    object_key: str
    total_size: int
    part_size: int = DEFAULT_PART_SIZE_BYTES
    upload_id: str | None = None
    state: UploadState = UploadState.IDLE
    uploaded_bytes: int = 0
    _parts: list[CompletedPart] = field(default_factory=list, init=False, repr=False)

    @property
    def parts(self) -> tuple[CompletedPart, ...]:
        return tuple(self._parts)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def transition(self, new_state: UploadState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal upload state transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def record_part(self, part: CompletedPart, size: int) -> None:
        if self.state is not UploadState.UPLOADING:
            raise RuntimeError(
                f"Cannot record part {part.part_number} in state {self.state.value}"
            )
        expected = len(self._parts) + 1
        if part.part_number != expected:
            raise RuntimeError(
                f"Parts must be contiguous: expected part {expected}, got {part.part_number}"
            )
        self._parts.append(part)
        self.uploaded_bytes += size


def _read_range(handle: BinaryIO, part: PartRange) -> bytes:
    handle.seek(part.offset)
    data = handle.read(part.size)
    if len(data) != part.size:
        raise OSError(
            f"Short read for part {part.part_number}: expected {part.size} bytes, "
            f"got {len(data)}; was the file modified during upload?"
        )
    return data


class MultipartUploadOrchestrator:
    """Uploads large files as multipart sessions with abort-on-failure.

    Parts go up one at a time unless ``max_concurrency`` is above one, in
    which case a bounded thread pool uploads them while keeping part
    numbering fixed by the plan. ``max_attempts`` above one enables per-part
    retry with exponential backoff; completion is never retried.
    """

    def __init__(
        self,
        client: StorageClient,
        *,
        bucket: str,
        listeners: ListenerRegistry | None = None,
        part_size: int = DEFAULT_PART_SIZE_BYTES,
        encryption: bool = False,
        storage_class: StorageClass = StorageClass.STANDARD,
        tags: dict[str, str] | None = None,
        url_prefix: str = DEFAULT_S3_URL_PREFIX,
        max_concurrency: int = 1,
        max_attempts: int = 1,
        retry_backoff: float = 0.5,
        metrics_enabled: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if part_size <= 0:
            raise ValueError("part_size must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._client = client
        self._bucket = bucket
        self._listeners = listeners if listeners is not None else ListenerRegistry()
        self.part_size = int(part_size)
        self._encryption = encryption
        self._storage_class = storage_class
        self._tags = dict(tags or {})
        self._url_prefix = url_prefix
        self._max_concurrency = max_concurrency
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._metrics_enabled = metrics_enabled
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        client: StorageClient,
        settings: "Settings",
        *,
        listeners: ListenerRegistry | None = None,
    ) -> "MultipartUploadOrchestrator":
        return cls(
            client,
            bucket=settings.STORAGE_ROOT,
            listeners=listeners,
            part_size=settings.STORAGE_PART_SIZE_BYTES,
            encryption=settings.STORAGE_ENCRYPTION,
            storage_class=StorageClass.parse(settings.STORAGE_CLASS),
            tags=settings.STORAGE_TAGS,
            url_prefix=settings.S3_URL_PREFIX,
            max_concurrency=settings.STORAGE_UPLOAD_CONCURRENCY,
            max_attempts=settings.STORAGE_PART_MAX_ATTEMPTS,
            retry_backoff=settings.STORAGE_RETRY_BACKOFF_SECONDS,
            metrics_enabled=settings.ENABLE_METRICS,
        )

    def upload(
        self, file: str | os.PathLike[str], destination_path: str | None = None
    ) -> StoredObjectDescriptor:
        """Upload ``file`` under ``destination_path`` in the bucket.

        Args:
            file: Local file larger than the part size.
            destination_path: Folder inside the bucket; ``None`` or ``""``
                stores at the bucket root.

        Returns:
            Descriptor of the stored object.

        Raises:
            InvalidArgumentError: If the file is missing, a directory or not
                larger than the part size. Raised before any network call.
            UniversalIOError: If any store call fails. The session, if one
                was opened, has been aborted.
        """
        path = Path(file)
        try:
            folder = validate_path(destination_path or "")
        except InvalidPathError as exc:
            raise InvalidArgumentError(str(exc)) from exc
        if not path.exists():
            raise InvalidArgumentError(f"{path} does not exist.")
        if path.is_dir():
            raise InvalidArgumentError(
                f"{path.name} is a folder. You should call the create_folder method."
            )
        total_size = path.stat().st_size
        if total_size <= self.part_size:
            raise InvalidArgumentError(
                f"{path.name} has {total_size} bytes; multipart upload needs more "
                f"than {self.part_size} bytes."
            )
        try:
            plan_parts(total_size, self.part_size)
        except ValueError as exc:
            raise InvalidArgumentError(str(exc)) from exc

        session = UploadSession(
            bucket=self._bucket,
            object_key=join_key(folder, path.name),
            total_size=total_size,
            part_size=self.part_size,
        )
        with track("multipart_upload", enabled=self._metrics_enabled):
            result = self._run(session, path)

        container_path = join_key(self._bucket, folder)
        descriptor = StoredObjectDescriptor(
            name=path.name,
            full_url=f"{self._url_prefix}{container_path}/{path.name}",
            version_id=result.version_id,
            container_path=container_path,
        )
        self._listeners.fire("on_file_stored", descriptor)
        return descriptor

    def _run(self, session: UploadSession, path: Path) -> PutResult:
        try:
            upload = self._client.init_multipart_upload(
                bucket=session.bucket,
                object_key=session.object_key,
                options=WriteOptions(encryption=self._encryption),
            )
        except Exception as exc:
            raise self._report(exc) from exc

        session.upload_id = upload.upload_id
        session.transition(UploadState.INITIATED)
        logger.info(
            "multipart_initiated bucket=%s key=%s upload_id=%s size=%s",
            session.bucket,
            session.object_key,
            session.upload_id,
            session.total_size,
            extra={
                "extra": {
                    "bucket": session.bucket,
                    "object_key": session.object_key,
                    "upload_id": session.upload_id,
                    "size_bytes": session.total_size,
                }
            },
        )

        try:
            self._listeners.fire("on_store_file")
            self._upload_parts(session, path)
            session.transition(UploadState.COMPLETING)
            result = self._finish(session)
            session.transition(UploadState.COMPLETED)
        except BaseException as exc:
            self._abort(session, exc)
            if not isinstance(exc, Exception):
                raise
            raise self._report(exc) from exc

        logger.info(
            "multipart_completed bucket=%s key=%s upload_id=%s parts=%s",
            session.bucket,
            session.object_key,
            session.upload_id,
            len(session.parts),
        )
        return result

    def _upload_parts(self, session: UploadSession, path: Path) -> None:
        plan = plan_parts(session.total_size, session.part_size)
        session.transition(UploadState.UPLOADING)

        if self._max_concurrency == 1 or len(plan) == 1:
            with path.open("rb") as handle:
                for part_range in plan:
                    body = _read_range(handle, part_range)
                    part = self._upload_part(session, part_range.part_number, body)
                    session.record_part(part, part_range.size)
        else:
            results = self._upload_parts_concurrently(session, path, plan)
            for part_range in plan:
                session.record_part(results[part_range.part_number], part_range.size)

        if session.uploaded_bytes != session.total_size:
            raise RuntimeError(
                f"Uploaded {session.uploaded_bytes} bytes of {session.total_size}"
            )

    def _upload_parts_concurrently(
        self, session: UploadSession, path: Path, plan: list[PartRange]
    ) -> dict[int, CompletedPart]:
        def upload_range(part_range: PartRange) -> CompletedPart:
            with path.open("rb") as handle:
                body = _read_range(handle, part_range)
            return self._upload_part(session, part_range.part_number, body)

        pool = ThreadPoolExecutor(
            max_workers=min(self._max_concurrency, len(plan)),
            thread_name_prefix=WORKER_THREAD_PREFIX,
        )
        try:
            futures = [pool.submit(upload_range, part_range) for part_range in plan]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future not in done:
                    continue
                error = future.exception()
                if error is not None:
                    raise error
            return {part.part_number: part for part in (f.result() for f in futures)}
        finally:
            # unstarted parts are dropped; running ones finish before abort
            pool.shutdown(wait=True, cancel_futures=True)

    def _upload_part(
        self, session: UploadSession, part_number: int, body: bytes
    ) -> CompletedPart:
        attempt = 1
        while True:
            try:
                part = self._client.upload_part(
                    bucket=session.bucket,
                    object_key=session.object_key,
                    upload_id=str(session.upload_id),
                    part_number=part_number,
                    body=body,
                )
            except Exception as exc:
                self._count(MULTIPART_PARTS, "error")
                if attempt >= self._max_attempts:
                    raise
                delay = self._retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    "multipart_part_retry upload_id=%s part=%s attempt=%s delay=%.2f error=%s",
                    session.upload_id,
                    part_number,
                    attempt,
                    delay,
                    exc,
                    extra={
                        "extra": {
                            "upload_id": session.upload_id,
                            "part_number": part_number,
                            "attempt": attempt,
                        }
                    },
                )
                self._sleep(delay)
                attempt += 1
            else:
                self._count(MULTIPART_PARTS, "ok")
                return part

    def _finish(self, session: UploadSession) -> PutResult:
        result = self._client.complete_multipart_upload(
            bucket=session.bucket,
            object_key=session.object_key,
            upload_id=str(session.upload_id),
            parts=session.parts,
        )
        if self._storage_class is not StorageClass.STANDARD:
            copied = self._client.change_storage_class(
                bucket=session.bucket,
                object_key=session.object_key,
                storage_class=self._storage_class.value,
                encryption=self._encryption,
            )
            # the copy is now the current version
            result = PutResult(
                etag=copied.etag or result.etag,
                version_id=copied.version_id or result.version_id,
            )
        if self._tags:
            self._client.put_object_tagging(
                bucket=session.bucket,
                object_key=session.object_key,
                tags=self._tags,
            )
        return result

    def _abort(self, session: UploadSession, cause: BaseException) -> None:
        session.transition(UploadState.ABORTING)
        try:
            self._client.abort_multipart_upload(
                bucket=session.bucket,
                object_key=session.object_key,
                upload_id=str(session.upload_id),
            )
        except Exception:
            self._count(MULTIPART_ABORTS, "error")
            logger.exception(
                "multipart_abort_failed bucket=%s key=%s upload_id=%s cause=%s",
                session.bucket,
                session.object_key,
                session.upload_id,
                cause,
                extra={
                    "extra": {
                        "bucket": session.bucket,
                        "object_key": session.object_key,
                        "upload_id": session.upload_id,
                        "cause": str(cause),
                    }
                },
            )
        else:
            self._count(MULTIPART_ABORTS, "ok")
            logger.warning(
                "multipart_aborted bucket=%s key=%s upload_id=%s parts=%s cause=%s",
                session.bucket,
                session.object_key,
                session.upload_id,
                len(session.parts),
                cause,
            )
        finally:
            session.transition(UploadState.ABORTED)

    def _report(self, exc: Exception) -> UniversalIOError:
        error = UniversalIOError(str(exc) or type(exc).__name__)
        self._listeners.fire("on_error", error)
        return error

    def _count(self, counter: Counter, outcome: str) -> None:
        if self._metrics_enabled:
            counter.labels(outcome=outcome).inc()
