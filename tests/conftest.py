from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

import pytest

from universal_storage.common.config import Settings, get_settings
from universal_storage.services.s3_storage import UniversalS3Storage
from tests.services.mock_storage import MockStorageClient


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        STORAGE_ROOT="test-bucket",
        STORAGE_TMP_DIR=str(tmp_path / "tmp"),
        S3_ACCESS_KEY_ID="test-key",
        S3_SECRET_ACCESS_KEY="test-secret",
    )


@pytest.fixture()
def mock_storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture()
def storage(settings: Settings, mock_storage: MockStorageClient) -> UniversalS3Storage:
    return UniversalS3Storage(settings, client=mock_storage)


@pytest.fixture()
def make_file(tmp_path: Path) -> Callable[..., Path]:
    """Create a local file with ``size`` random bytes."""
    source_dir = tmp_path / "src"
    source_dir.mkdir()

    def _make(name: str, size: int) -> Path:
        path = source_dir / name
        path.write_bytes(os.urandom(size))
        return path

    return _make

