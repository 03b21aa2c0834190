"""Upload service for client-driven multipart transfers.

This module provides the application service layer that callers (an LFS
batch endpoint, the REST API in this package) use to plan multipart
uploads, commit them from client payloads, and hand out download URLs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mpupload.app.services.base import BaseService, ServiceError
from mpupload.common.config import Settings, get_settings
from mpupload.infra.storage.client import (
    CommitPayload,
    MultipartCapable,
    MultipartPlan,
    ObjectStorage,
)

logger = logging.getLogger("mpupload.storage")


class MultipartNotSupportedError(ServiceError):
    """Raised when the configured backend cannot do presigned multipart uploads."""


@dataclass(frozen=True, slots=True)
class DownloadUrl:
    """Presigned URL for downloading an object."""

    url: str
    expires_in: int


class UploadService(BaseService):
    """Application service for multipart upload orchestration.

    Store errors raised by the backend (``SessionError``, ``SigningError``,
    ``DecodeError``, ``CommitError``, ``URLError``) propagate unchanged.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(storage)
        self._settings = settings or get_settings()

    def _multipart(self) -> MultipartCapable:
        if not isinstance(self._storage, MultipartCapable):
            raise MultipartNotSupportedError(
                f"Storage backend {type(self._storage).__name__} "
                "does not support multipart uploads"
            )
        return self._storage

    @property
    def supports_multipart(self) -> bool:
        return isinstance(self._storage, MultipartCapable)

    def plan_multipart_upload(self, path: str, size: int) -> MultipartPlan:
        """Open a multipart session and presign every chunk.

        Args:
            path: Logical object path.
            size: Total object size in bytes.

        Returns:
            MultipartPlan holding parts, abort (always None) and verify
            descriptors.

        Raises:
            InvalidPathError: If ``path`` is empty.
            MultipartNotSupportedError: If the backend lacks multipart support.
            PlanningError: If ``size`` is not positive or needs too many parts.
            SessionError: If the store refuses the session.
            SigningError: If a part URL cannot be issued.
        """
        path = self._ensure_path(path)
        backend = self._multipart()
        return backend.generate_multipart_parts(path, int(size))

    def commit_multipart_upload(self, path: str, payload: bytes | str) -> CommitPayload:
        """Complete a multipart session from the client's payload.

        Args:
            path: Logical object path the session was planned for.
            payload: Raw JSON completion payload.

        Returns:
            The decoded payload submitted to the store.

        Raises:
            InvalidPathError: If ``path`` is empty.
            MultipartNotSupportedError: If the backend lacks multipart support.
            DecodeError: If the payload is malformed.
            CommitError: If the store rejects the completion.
        """
        path = self._ensure_path(path)
        backend = self._multipart()
        commit = backend.commit_upload(path, payload)
        logger.info(
            "multipart_committed path=%s upload_id=%s parts=%s",
            path,
            commit.upload_id,
            len(commit.part_ids),
            extra={
                "extra": {
                    "path": path,
                    "upload_id": commit.upload_id,
                    "parts": len(commit.part_ids),
                }
            },
        )
        return commit

    def issue_download_url(self, path: str, display_name: str | None = None) -> DownloadUrl:
        """Generate a presigned URL for downloading an object.

        Raises:
            InvalidPathError: If ``path`` is empty.
            URLError: If the URL cannot be signed or rewritten.
        """
        path = self._ensure_path(path)
        url = self._storage.url(path, display_name)
        return DownloadUrl(
            url=url, expires_in=int(self._settings.DOWNLOAD_URL_EXPIRES)
        )
