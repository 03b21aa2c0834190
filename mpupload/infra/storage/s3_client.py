"""S3-compatible generic storage backend.

This module provides the plain object backend (put, get, head, delete and
presigned reads) that works with AWS S3, MinIO, and other S3-compatible
services. Multipart-aware backends wrap it rather than extend it.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING, Any, BinaryIO

from mpupload.infra.observability.metrics import observe_store_call
from mpupload.infra.storage.client import (
    ConfigurationError,
    InvalidKeyError,
    ObjectHead,
    StorageError,
    URLError,
)

if TYPE_CHECKING:
    from mpupload.common.config import Settings

logger = logging.getLogger("mpupload.storage")


def build_boto_client(
    settings: "Settings", *, signature_version: str | None = None
) -> Any:
    """Create a boto3 S3 client from settings.

    Retries are disabled: every store call is a single attempt bounded by
    the configured connect and read timeouts.

    Raises:
        ConfigurationError: If boto3 is missing or the client cannot be built.
    """
    try:
        import boto3
        from botocore.config import Config
    except ImportError as exc:
        raise ConfigurationError(
            "boto3 and botocore are required for S3 storage backend. "
            "Install with: pip install boto3"
        ) from exc

    addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
    config_kwargs: dict[str, Any] = {
        "s3": {"addressing_style": addressing_style},
        "retries": {"total_max_attempts": 1},
        "connect_timeout": settings.S3_CONNECT_TIMEOUT,
        "read_timeout": settings.S3_READ_TIMEOUT,
    }
    if signature_version:
        config_kwargs["signature_version"] = signature_version

    try:
        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=Config(**config_kwargs),
        )
    except Exception as exc:
        raise ConfigurationError(f"Failed to create S3 client: {exc}") from exc


def require_store_settings(settings: "Settings") -> None:
    if not settings.S3_BUCKET:
        raise ConfigurationError("S3_BUCKET is required")
    if not settings.S3_ACCESS_KEY_ID or not settings.S3_SECRET_ACCESS_KEY:
        raise ConfigurationError(
            "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required"
        )


class S3ObjectStorage:
    """S3-compatible object storage backend.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the backend with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.

        Raises:
            ConfigurationError: If the bucket or credentials are missing.
        """
        require_store_settings(settings)
        self._settings = settings
        self.bucket: str = str(settings.S3_BUCKET)
        self._prefix = (settings.S3_PREFIX or "").strip("/")
        self._client = self._build_client(settings)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "S3ObjectStorage":
        return cls(settings=settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        return build_boto_client(settings)

    def build_path(self, path: str) -> str:
        """Map a logical path to the object key inside the bucket."""
        cleaned = posixpath.normpath("/" + (path or "")).lstrip("/")
        if not cleaned or cleaned == ".":
            raise InvalidKeyError("Object path must not be empty")
        if not self._prefix:
            return cleaned
        return f"{self._prefix}/{cleaned}"

    def save(
        self,
        path: str,
        data: bytes | BinaryIO,
        *,
        content_type: str | None = None,
    ) -> int:
        """Store an object in a single PUT request.

        Returns:
            Number of bytes written.
        """
        body = data if isinstance(data, bytes) else data.read()
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": self.build_path(path),
            "Body": body,
        }
        if content_type:
            params["ContentType"] = content_type

        try:
            with observe_store_call("put_object"):
                self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to put object: {exc}") from exc
        return len(body)

    def open(self, path: str) -> bytes:
        """Read a whole object."""
        try:
            with observe_store_call("get_object"):
                response = self._client.get_object(
                    Bucket=self.bucket, Key=self.build_path(path)
                )
                return response["Body"].read()
        except Exception as exc:
            raise StorageError(f"Failed to get object: {exc}") from exc

    def stat(self, path: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            with observe_store_call("head_object"):
                response = self._client.head_object(
                    Bucket=self.bucket, Key=self.build_path(path)
                )
        except Exception as exc:
            raise StorageError(f"Failed to get object metadata: {exc}") from exc

        size = response.get("ContentLength")
        return ObjectHead(
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
        )

    def delete(self, path: str) -> None:
        """Delete an object from storage."""
        try:
            with observe_store_call("delete_object"):
                self._client.delete_object(
                    Bucket=self.bucket, Key=self.build_path(path)
                )
        except Exception as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

    def url(self, path: str, name: str | None = None) -> str:
        """Generate a presigned URL for downloading an object."""
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": self.build_path(path)}
        if name:
            # Escape quotes in filename for Content-Disposition header
            safe_filename = name.replace('"', '\\"')
            params["ResponseContentDisposition"] = (
                f'attachment; filename="{safe_filename}"'
            )

        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=int(self._settings.DOWNLOAD_URL_EXPIRES),
            )
        except Exception as exc:
            raise URLError(f"Failed to generate download URL: {exc}") from exc

        if not url:
            raise URLError("Generated presigned URL is empty")

        return str(url)
