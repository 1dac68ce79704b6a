"""Lifecycle notifications for storage operations.

Listeners subclass :class:`StorageListener` and override the hooks they care
about. Each storage instance owns a :class:`ListenerRegistry`; delivery follows
registration order and a failing listener never blocks the ones after it.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from universal_storage.services.base import (
        StoredObjectDescriptor,
        UniversalStorageError,
    )

logger = logging.getLogger(__name__)


class StorageListener:
    """Base listener; every hook is a no-op."""

    def on_store_file(self) -> None:
        pass

    def on_file_stored(self, descriptor: "StoredObjectDescriptor") -> None:
        pass

    def on_remove_file(self) -> None:
        pass

    def on_file_removed(self) -> None:
        pass

    def on_create_folder(self) -> None:
        pass

    def on_folder_created(self, descriptor: "StoredObjectDescriptor") -> None:
        pass

    def on_remove_folder(self) -> None:
        pass

    def on_folder_removed(self) -> None:
        pass

    def on_error(self, error: "UniversalStorageError") -> None:
        pass


HOOKS = frozenset(
    name for name in vars(StorageListener) if name.startswith("on_")
)


class ListenerRegistry:
    """Ordered, thread-safe collection of listeners."""

    def __init__(self, listeners: Iterable[StorageListener] = ()) -> None:
        self._lock = threading.Lock()
        self._listeners: list[StorageListener] = list(listeners)

    def add(self, listener: StorageListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: StorageListener) -> bool:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def snapshot(self) -> tuple[StorageListener, ...]:
        with self._lock:
            return tuple(self._listeners)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def fire(self, hook: str, *args: object) -> None:
        """Deliver ``hook`` to every listener registered at call time."""
        if hook not in HOOKS:
            raise ValueError(f"Unknown listener hook: {hook}")
        for listener in self.snapshot():
            try:
                getattr(listener, hook)(*args)
            except Exception:
                logger.exception(
                    "listener_failed hook=%s listener=%s",
                    hook,
                    type(listener).__name__,
                    extra={
                        "extra": {"hook": hook, "listener": type(listener).__name__}
                    },
                )
