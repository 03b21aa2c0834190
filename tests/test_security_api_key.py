from fastapi.testclient import TestClient

from mpupload.common.config import get_settings
from mpupload.infra.storage.registry import StorageRegistry
from mpupload.main import create_app

from tests.services.mock_storage import MockStorage


def test_api_key_required_when_enabled(monkeypatch):
    monkeypatch.setenv("API_KEY_ENABLED", "true")
    monkeypatch.setenv("API_KEY", "secret-123")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    registry = StorageRegistry()
    registry.register("hwcloud", lambda settings: MockStorage())
    client = TestClient(create_app(registry))
    body = {"path": "obj", "size": 5}

    r = client.post("/api/v1/objects/multipart", json=body)
    assert r.status_code == 401

    r = client.post(
        "/api/v1/objects/multipart", json=body, headers={"X-API-Key": "wrong"}
    )
    assert r.status_code == 401

    r = client.post(
        "/api/v1/objects/multipart", json=body, headers={"X-API-Key": "secret-123"}
    )
    assert r.status_code == 201

    # health stays open
    assert client.get("/health").status_code == 200
