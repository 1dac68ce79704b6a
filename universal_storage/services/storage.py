"""Provider-independent storage facade.

``UniversalStorage`` owns the listener registry and the temporary directory
used by retrievals; concrete providers implement the object operations.
Use :func:`build_storage` to get the provider selected by the settings.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from universal_storage.common.config import Settings, get_settings
from universal_storage.common.paths import InvalidPathError, validate_path
from universal_storage.infra.storage.client import ObjectMissingError, StorageClient
from universal_storage.services.base import (
    InvalidArgumentError,
    ObjectNotFoundError,
    StorageBackendNotConfiguredError,
    StoredObjectDescriptor,
    UniversalIOError,
    UniversalStorageError,
)
from universal_storage.services.listeners import ListenerRegistry, StorageListener

logger = logging.getLogger(__name__)


class TmpDirGuard:
    """Lets retrievals share the tmp directory while excluding ``clean``."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._active_retrievals = 0
        self._cleaning = False

    @contextmanager
    def retrieving(self) -> Iterator[None]:
        with self._cond:
            while self._cleaning:
                self._cond.wait()
            self._active_retrievals += 1
        try:
            yield
        finally:
            with self._cond:
                self._active_retrievals -= 1
                self._cond.notify_all()

    @contextmanager
    def cleaning(self) -> Iterator[None]:
        with self._cond:
            while self._cleaning or self._active_retrievals:
                self._cond.wait()
            self._cleaning = True
        try:
            yield
        finally:
            with self._cond:
                self._cleaning = False
                self._cond.notify_all()


class UniversalStorage(ABC):
    """Facade over one storage provider."""

    def __init__(
        self,
        settings: Settings,
        *,
        listeners: Iterable[StorageListener] = (),
    ) -> None:
        self._settings = settings
        self._listeners = ListenerRegistry(listeners)
        self._tmp_guard = TmpDirGuard()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def listeners(self) -> ListenerRegistry:
        return self._listeners

    def register_listener(self, listener: StorageListener) -> None:
        self._listeners.add(listener)

    def unregister_listener(self, listener: StorageListener) -> bool:
        return self._listeners.remove(listener)

    @abstractmethod
    def store_file(
        self, file: str | os.PathLike[str], path: str | None = None
    ) -> StoredObjectDescriptor:
        """Store ``file`` under ``path``, replacing any existing object."""

    def store_file_from_path(
        self, source: str, target_path: str | None = None
    ) -> StoredObjectDescriptor:
        self._validate(source)
        if target_path is not None:
            self._validate(target_path)
        return self.store_file(Path(source), target_path)

    @abstractmethod
    def remove_file(self, path: str) -> None:
        ...

    @abstractmethod
    def create_folder(self, path: str) -> StoredObjectDescriptor:
        ...

    @abstractmethod
    def remove_folder(self, path: str) -> None:
        ...

    @abstractmethod
    def retrieve_file(self, path: str) -> Path | None:
        """Download the object at ``path`` into the tmp directory."""

    @abstractmethod
    def retrieve_file_as_stream(self, path: str) -> BinaryIO | None:
        ...

    @abstractmethod
    def wipe(self) -> int:
        """Delete every object and every object version in the root."""

    def clean(self) -> None:
        """Empty the tmp directory. Stored objects are not touched."""
        tmp = Path(self._settings.STORAGE_TMP_DIR)
        with self._tmp_guard.cleaning():
            if not tmp.exists():
                return
            try:
                for entry in tmp.iterdir():
                    if entry.is_dir() and not entry.is_symlink():
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
            except OSError as exc:
                raise UniversalIOError(str(exc)) from exc
        logger.info("tmp_cleaned dir=%s", tmp)

    def _validate(self, path: str | None) -> str:
        try:
            return validate_path(path)
        except InvalidPathError as exc:
            raise InvalidArgumentError(str(exc)) from exc

    def _invalid(self, message: str) -> InvalidArgumentError:
        error = InvalidArgumentError(message)
        self._listeners.fire("on_error", error)
        return error

    def _io_error(self, exc: Exception) -> UniversalStorageError:
        """Normalize ``exc`` and report it once to the error listeners."""
        if isinstance(exc, UniversalStorageError):
            return exc
        message = str(exc) or type(exc).__name__
        error: UniversalIOError
        if isinstance(exc, ObjectMissingError):
            error = ObjectNotFoundError(message)
        else:
            error = UniversalIOError(message)
        self._listeners.fire("on_error", error)
        return error


def build_storage(
    settings: Settings | None = None,
    *,
    client: StorageClient | None = None,
    listeners: Iterable[StorageListener] = (),
) -> UniversalStorage:
    """Build the storage facade for the configured provider."""
    settings = settings or get_settings()
    provider = (settings.STORAGE_PROVIDER or "").strip().lower()
    if provider != "s3":
        raise StorageBackendNotConfiguredError(
            f"Unsupported storage provider: {provider}. Only 's3' is supported."
        )
    if not settings.STORAGE_ROOT:
        raise StorageBackendNotConfiguredError("STORAGE_ROOT is required")

    from universal_storage.services.s3_storage import UniversalS3Storage

    return UniversalS3Storage(settings, client=client, listeners=listeners)
