from __future__ import annotations

import posixpath

from mpupload.infra.storage.client import ObjectStorage


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class InvalidPathError(ServiceError):
    """Raised when an object path is missing or unusable."""


class BaseService:
    """Provides guard rails and helpers shared by application services."""

    def __init__(self, storage: ObjectStorage):
        self._storage = storage

    @property
    def storage(self) -> ObjectStorage:
        return self._storage

    def _ensure_path(self, path: str | None) -> str:
        cleaned = (path or "").strip()
        if not cleaned or cleaned.strip("/") == "":
            raise InvalidPathError("path is required for this operation")
        # "a/.." and friends collapse to the bucket root
        if posixpath.normpath("/" + cleaned).strip("/") == "":
            raise InvalidPathError(f"path does not name an object: {cleaned!r}")
        return cleaned
