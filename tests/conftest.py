from __future__ import annotations

import pytest

from mpupload.common.config import Settings, get_settings

TEST_ENV = {
    "STORAGE_TYPE": "hwcloud",
    "S3_ENDPOINT_URL": "https://obs.example.com",
    "S3_REGION": "us-east-1",
    "S3_ACCESS_KEY_ID": "test-key",
    "S3_SECRET_ACCESS_KEY": "test-secret",
    "S3_BUCKET": "test-bucket",
    "S3_PREFIX": "lfs",
    "STORAGE_BUCKET_DOMAIN": "cdn.example.com",
    "API_KEY_ENABLED": "false",
    "TRACE_HTTP": "false",
    "ENABLE_METRICS": "true",
}


@pytest.fixture(autouse=True)
def storage_env(monkeypatch):
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        S3_ENDPOINT_URL="https://obs.example.com",
        S3_ACCESS_KEY_ID="test-key",
        S3_SECRET_ACCESS_KEY="test-secret",
        S3_BUCKET="test-bucket",
        S3_PREFIX="lfs",
        STORAGE_BUCKET_DOMAIN="cdn.example.com",
        MULTIPART_CHUNK_SIZE=20_000_000,
    )
