"""Helpers for validating and composing storage paths.

Storage paths use ``/`` as the only separator. A trailing ``/`` marks a folder.
"""

from __future__ import annotations

SEPARATOR = "/"


class InvalidPathError(ValueError):
    """Raised when a storage path is malformed."""


def validate_path(path: str | None) -> str:
    """Return ``path`` unchanged if it is a well-formed storage path.

    The empty string is accepted; callers decide what an empty path means.
    """
    if path is None:
        raise InvalidPathError("Invalid path. The path shouldn't be null.")
    if not isinstance(path, str):
        raise InvalidPathError(f"Invalid path. Expected a string, got {type(path).__name__}.")
    if "\x00" in path:
        raise InvalidPathError("Invalid path. The path contains a NUL character.")
    if "\\" in path:
        raise InvalidPathError(
            "Invalid path. Use '/' as separator, backslashes are not allowed."
        )
    if ".." in path.split(SEPARATOR):
        raise InvalidPathError("Invalid path. Parent references ('..') are not allowed.")
    return path


def is_folder_path(path: str) -> bool:
    return path.strip().endswith(SEPARATOR)


def as_folder_key(path: str) -> str:
    return path if path.endswith(SEPARATOR) else path + SEPARATOR


def join_key(*parts: str | None) -> str:
    """Join path segments, dropping empty ones and redundant separators."""
    cleaned = [p.strip(SEPARATOR) for p in parts if p and p.strip(SEPARATOR)]
    return SEPARATOR.join(cleaned)


def basename(key: str) -> str:
    return key.rstrip(SEPARATOR).rsplit(SEPARATOR, 1)[-1]
