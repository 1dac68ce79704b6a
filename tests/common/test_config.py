import json
import os

import pytest

from universal_storage.common import config
from universal_storage.common.config import MIB, Settings, get_settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.startswith(("STORAGE_", "S3_")) or name == "ENABLE_METRICS":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "ENV_FILE", tmp_path / "missing.env")


def test_defaults():
    settings = Settings()

    assert settings.STORAGE_PROVIDER == "s3"
    assert settings.STORAGE_CLASS == "STANDARD"
    assert settings.STORAGE_PART_SIZE_BYTES == 5 * MIB
    assert settings.S3_URL_PREFIX == "https://s3.amazonaws.com/"
    assert settings.STORAGE_TMP_DIR.endswith("universal-storage")
    assert settings.STORAGE_TAGS == {}


def test_from_environment_coerces_types(monkeypatch):
    monkeypatch.setenv("STORAGE_ROOT", "media-bucket")
    monkeypatch.setenv("STORAGE_ENCRYPTION", "true")
    monkeypatch.setenv("STORAGE_TAGS", "team=data, env=prod")
    monkeypatch.setenv("STORAGE_PART_SIZE_BYTES", str(8 * MIB))
    monkeypatch.setenv("STORAGE_RETRY_BACKOFF_SECONDS", "1.5")
    monkeypatch.setenv("S3_USE_SSL", "0")
    monkeypatch.setenv("S3_PROFILE", "  ")

    settings = Settings.from_environment()

    assert settings.STORAGE_ROOT == "media-bucket"
    assert settings.STORAGE_ENCRYPTION is True
    assert settings.STORAGE_TAGS == {"team": "data", "env": "prod"}
    assert settings.STORAGE_PART_SIZE_BYTES == 8 * MIB
    assert settings.STORAGE_RETRY_BACKOFF_SECONDS == 1.5
    assert settings.S3_USE_SSL is False
    assert settings.S3_PROFILE is None


def test_env_file_does_not_override_environment(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text('# comment\nSTORAGE_ROOT="from-file"\nS3_REGION=eu-west-1\n')
    monkeypatch.setattr(config, "ENV_FILE", env_file)
    monkeypatch.setenv("STORAGE_ROOT", "from-env")
    # the loader writes into os.environ; register S3_REGION so teardown removes it
    monkeypatch.setenv("S3_REGION", "")
    monkeypatch.delenv("S3_REGION")

    settings = Settings.from_environment()

    assert settings.STORAGE_ROOT == "from-env"
    assert settings.S3_REGION == "eu-west-1"


def test_from_json_file(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text(
        json.dumps(
            {
                "storage_root": "json-bucket",
                "storage_tags": {"owner": "ops", "tier": 2},
                "storage_encryption": True,
                "storage_class": "STANDARD_IA",
                "storage_upload_concurrency": 4,
            }
        )
    )

    settings = Settings.from_json_file(path)

    assert settings.STORAGE_ROOT == "json-bucket"
    assert settings.STORAGE_TAGS == {"owner": "ops", "tier": "2"}
    assert settings.STORAGE_ENCRYPTION is True
    assert settings.STORAGE_CLASS == "STANDARD_IA"
    assert settings.STORAGE_UPLOAD_CONCURRENCY == 4


def test_from_json_file_rejects_non_object(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError, match="JSON object"):
        Settings.from_json_file(path)


def test_tags_accept_json_string(monkeypatch):
    monkeypatch.setenv("STORAGE_TAGS", '{"a": "1"}')

    assert Settings.from_environment().STORAGE_TAGS == {"a": "1"}


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"STORAGE_PART_SIZE_BYTES": MIB}, "STORAGE_PART_SIZE_BYTES"),
        ({"STORAGE_UPLOAD_CONCURRENCY": 0}, "STORAGE_UPLOAD_CONCURRENCY"),
        ({"STORAGE_PART_MAX_ATTEMPTS": 0}, "STORAGE_PART_MAX_ATTEMPTS"),
        ({"STORAGE_LIST_PAGE_SIZE": 1001}, "STORAGE_LIST_PAGE_SIZE"),
    ],
)
def test_validation(overrides, message):
    with pytest.raises(ValueError, match=message):
        Settings(**overrides)


def test_get_settings_prefers_settings_file(monkeypatch, tmp_path):
    path = tmp_path / "storage.json"
    path.write_text(json.dumps({"storage_root": "file-bucket"}))
    monkeypatch.setenv("STORAGE_ROOT", "env-bucket")
    monkeypatch.setenv("STORAGE_SETTINGS_FILE", str(path))

    assert get_settings().STORAGE_ROOT == "file-bucket"


def test_get_settings_is_cached(monkeypatch):
    monkeypatch.setenv("STORAGE_ROOT", "cached")

    assert get_settings() is get_settings()
