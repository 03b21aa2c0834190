from __future__ import annotations

import logging

from fastapi import Header, HTTPException, Request

from mpupload.app.services.upload_service import UploadService
from mpupload.common.config import get_settings
from mpupload.infra.storage.client import ConfigurationError, ObjectStorage
from mpupload.infra.storage.registry import StorageRegistry, build_default_registry

logger = logging.getLogger("http")


def get_storage(request: Request) -> ObjectStorage:
    """Return the backend built at startup, building it on first use."""
    storage = getattr(request.app.state, "storage", None)
    if storage is not None:
        return storage

    settings = get_settings()
    registry: StorageRegistry = (
        getattr(request.app.state, "storage_registry", None)
        or build_default_registry()
    )
    try:
        storage = registry.create(settings.STORAGE_TYPE, settings)
    except ConfigurationError as exc:
        logger.error("storage_not_configured error=%s", exc)
        raise HTTPException(
            status_code=503,
            detail={"message": str(exc), "error_code": "storage_not_configured"},
        ) from exc
    request.app.state.storage = storage
    return storage


def get_upload_service(request: Request) -> UploadService:
    return UploadService(get_storage(request), settings=get_settings())


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if settings.API_KEY_ENABLED:
        api_key_expected = getattr(settings, "API_KEY", None)
        if not x_api_key or (api_key_expected and x_api_key != api_key_expected):
            raise HTTPException(status_code=401, detail="Invalid API key")
