from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import Any

ENV_FILE = Path(".env")

MIB = 1024 * 1024
# S3 rejects non-final parts smaller than 5 MiB
MIN_PART_SIZE_BYTES = 5 * MIB
DEFAULT_S3_URL_PREFIX = "https://s3.amazonaws.com/"


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_tags(value: Any) -> dict[str, str]:
    """Accept a mapping, a JSON object string or ``k=v,k2=v2``."""
    if not value:
        return {}
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    text = str(value).strip()
    if text.startswith("{"):
        return _as_tags(json.loads(text))
    tags: dict[str, str] = {}
    for item in text.split(","):
        if "=" not in item:
            continue
        key, val = item.split("=", 1)
        if key.strip():
            tags[key.strip()] = val.strip()
    return tags


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Settings:
    STORAGE_PROVIDER: str = "s3"
    STORAGE_ROOT: str = ""
    STORAGE_TMP_DIR: str = field(
        default_factory=lambda: os.path.join(
            os.environ.get("TMPDIR", "/tmp"), "universal-storage"
        )
    )
    STORAGE_TAGS: dict[str, str] = field(default_factory=dict)
    STORAGE_CLASS: str = "STANDARD"
    STORAGE_ENCRYPTION: bool = False
    S3_REGION: str | None = "us-east-1"
    S3_PROFILE: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_ADDRESSING_STYLE: str = "auto"
    S3_USE_SSL: bool = True
    S3_URL_PREFIX: str = DEFAULT_S3_URL_PREFIX
    STORAGE_PART_SIZE_BYTES: int = MIN_PART_SIZE_BYTES
    STORAGE_UPLOAD_CONCURRENCY: int = 1
    STORAGE_PART_MAX_ATTEMPTS: int = 1
    STORAGE_RETRY_BACKOFF_SECONDS: float = 0.5
    STORAGE_REQUEST_TIMEOUT_SECONDS: float = 60.0
    STORAGE_LIST_PAGE_SIZE: int = 1000
    ENABLE_METRICS: bool = True

    def __post_init__(self) -> None:
        if self.STORAGE_PART_SIZE_BYTES < MIN_PART_SIZE_BYTES:
            raise ValueError(
                f"STORAGE_PART_SIZE_BYTES must be at least {MIN_PART_SIZE_BYTES} bytes."
            )
        if self.STORAGE_UPLOAD_CONCURRENCY < 1:
            raise ValueError("STORAGE_UPLOAD_CONCURRENCY must be >= 1.")
        if self.STORAGE_PART_MAX_ATTEMPTS < 1:
            raise ValueError("STORAGE_PART_MAX_ATTEMPTS must be >= 1.")
        if not 1 <= self.STORAGE_LIST_PAGE_SIZE <= 1000:
            raise ValueError("STORAGE_LIST_PAGE_SIZE must be between 1 and 1000.")

    @classmethod
    def _from_mapping(cls, source: dict[str, Any]) -> "Settings":
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in source:
                continue
            raw = source[f.name]
            default = getattr(cls, f.name, None)
            if f.name == "STORAGE_TAGS":
                kwargs[f.name] = _as_tags(raw)
            elif isinstance(default, bool):
                kwargs[f.name] = _as_bool(raw, default)
            elif isinstance(default, int):
                kwargs[f.name] = int(raw)
            elif isinstance(default, float):
                kwargs[f.name] = float(raw)
            elif f.name.startswith("S3_") and f.name not in {
                "S3_ADDRESSING_STYLE",
                "S3_URL_PREFIX",
            }:
                kwargs[f.name] = _as_optional_str(raw)
            else:
                kwargs[f.name] = str(raw)
        return cls(**kwargs)

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        names = {f.name for f in fields(cls)}
        return cls._from_mapping(
            {key: value for key, value in os.environ.items() if key in names}
        )

    @classmethod
    def from_json_file(cls, path: str | os.PathLike[str]) -> "Settings":
        """Load settings from a JSON document.

        Keys are the lower-cased field names, e.g. ``{"storage_root": "my-bucket",
        "storage_tags": {"team": "data"}, "storage_encryption": true}``.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a JSON object.")
        return cls._from_mapping({str(k).upper(): v for k, v in data.items()})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings_file = os.environ.get("STORAGE_SETTINGS_FILE")
    if settings_file:
        return Settings.from_json_file(settings_file)
    return Settings.from_environment()
