from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

# 20 MB chunks, the store accepts up to 10000 parts per session
DEFAULT_CHUNK_SIZE = 20_000_000
DEFAULT_UPLOAD_EXPIRES = 1800
DEFAULT_DOWNLOAD_EXPIRES = 3600


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


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    STORAGE_TYPE: str = "hwcloud"
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET: str | None = None
    S3_PREFIX: str = ""
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "virtual"
    S3_CONNECT_TIMEOUT: float = 5.0
    S3_READ_TIMEOUT: float = 30.0
    STORAGE_BUCKET_DOMAIN: str | None = None
    DOWNLOAD_URL_SCHEME: str = "http"
    MULTIPART_CHUNK_SIZE: int = DEFAULT_CHUNK_SIZE
    MULTIPART_UPLOAD_EXPIRES: int = DEFAULT_UPLOAD_EXPIRES
    DOWNLOAD_URL_EXPIRES: int = DEFAULT_DOWNLOAD_EXPIRES
    MULTIPART_SIGN_WORKERS: int = 1
    MULTIPART_SIGNATURE_VERSION: str = "s3"
    ENABLE_METRICS: bool = True
    API_KEY_ENABLED: bool = False
    API_KEY: str | None = None
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)
    TRACE_HTTP: bool = False

    def __post_init__(self) -> None:
        if self.MULTIPART_CHUNK_SIZE <= 0:
            raise ValueError("MULTIPART_CHUNK_SIZE must be a positive byte count.")
        if self.MULTIPART_UPLOAD_EXPIRES <= 0 or self.DOWNLOAD_URL_EXPIRES <= 0:
            raise ValueError(
                "MULTIPART_UPLOAD_EXPIRES and DOWNLOAD_URL_EXPIRES must be positive."
            )
        if self.MULTIPART_SIGN_WORKERS < 1:
            raise ValueError("MULTIPART_SIGN_WORKERS must be at least 1.")
        if self.DOWNLOAD_URL_SCHEME not in {"http", "https"}:
            raise ValueError("DOWNLOAD_URL_SCHEME must be 'http' or 'https'.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        env = os.environ
        return cls(
            STORAGE_TYPE=env.get("STORAGE_TYPE", cls.STORAGE_TYPE).strip().lower(),
            S3_ENDPOINT_URL=_as_optional(env.get("S3_ENDPOINT_URL")),
            S3_REGION=env.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=_as_optional(env.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(env.get("S3_SECRET_ACCESS_KEY")),
            S3_BUCKET=_as_optional(env.get("S3_BUCKET")),
            S3_PREFIX=env.get("S3_PREFIX", cls.S3_PREFIX),
            S3_USE_SSL=_as_bool(env.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=env.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_CONNECT_TIMEOUT=float(
                env.get("S3_CONNECT_TIMEOUT", cls.S3_CONNECT_TIMEOUT)
            ),
            S3_READ_TIMEOUT=float(env.get("S3_READ_TIMEOUT", cls.S3_READ_TIMEOUT)),
            STORAGE_BUCKET_DOMAIN=_as_optional(env.get("STORAGE_BUCKET_DOMAIN")),
            DOWNLOAD_URL_SCHEME=env.get(
                "DOWNLOAD_URL_SCHEME", cls.DOWNLOAD_URL_SCHEME
            ).lower(),
            MULTIPART_CHUNK_SIZE=int(
                env.get("MULTIPART_CHUNK_SIZE", cls.MULTIPART_CHUNK_SIZE)
            ),
            MULTIPART_UPLOAD_EXPIRES=int(
                env.get("MULTIPART_UPLOAD_EXPIRES", cls.MULTIPART_UPLOAD_EXPIRES)
            ),
            DOWNLOAD_URL_EXPIRES=int(
                env.get("DOWNLOAD_URL_EXPIRES", cls.DOWNLOAD_URL_EXPIRES)
            ),
            MULTIPART_SIGN_WORKERS=int(
                env.get("MULTIPART_SIGN_WORKERS", cls.MULTIPART_SIGN_WORKERS)
            ),
            MULTIPART_SIGNATURE_VERSION=env.get(
                "MULTIPART_SIGNATURE_VERSION", cls.MULTIPART_SIGNATURE_VERSION
            ),
            ENABLE_METRICS=_as_bool(env.get("ENABLE_METRICS"), cls.ENABLE_METRICS),
            API_KEY_ENABLED=_as_bool(env.get("API_KEY_ENABLED"), cls.API_KEY_ENABLED),
            API_KEY=env.get("API_KEY"),
            CORS_ENABLED=_as_bool(env.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(env.get("CORS_ORIGINS")),
            TRACE_HTTP=_as_bool(env.get("TRACE_HTTP"), cls.TRACE_HTTP),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
