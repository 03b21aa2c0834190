"""Multipart-capable storage backend.

``MultipartObjectStorage`` hands out client-driven multipart sessions:
it opens a session at the store, presigns one PUT URL per chunk, and later
completes the session from the part list the uploading client reports
back. Ordinary object operations are forwarded to a wrapped generic
backend.

Bytes never pass through this module. Every store call is a single
attempt; failures are raised to the caller and an initiated session that
is never committed is left for the store's own lifecycle rules.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, BinaryIO, Sequence
from urllib.parse import urlsplit, urlunsplit

from mpupload.infra.observability.metrics import observe_store_call
from mpupload.infra.storage.chunking import MAX_PART_NUMBER, part_count, plan_chunks
from mpupload.infra.storage.client import (
    ChunkSpan,
    CommitError,
    CommitPayload,
    DecodeError,
    MultipartEndpoint,
    MultipartPart,
    MultipartPlan,
    MultipartSession,
    ObjectHead,
    ObjectStorage,
    PlanningError,
    SessionError,
    SigningError,
    URLError,
    sorted_part_ids,
)
from mpupload.infra.storage.commit import decode_commit_payload
from mpupload.infra.storage.s3_client import (
    S3ObjectStorage,
    build_boto_client,
    require_store_settings,
)

if TYPE_CHECKING:
    from mpupload.common.config import Settings

logger = logging.getLogger("mpupload.storage")

COMMIT_AGGREGATION = {"key": "part_ids", "type": "array", "item": "index,etag"}

# Longest slice of a rejected commit body written to the error log
MAX_LOGGED_PAYLOAD = 512


def rewrite_public_url(signed_url: str, *, domain: str, scheme: str) -> str:
    """Swap scheme and host of a signed URL, keeping path and query intact.

    Raises:
        URLError: If the URL cannot be parsed.
    """
    try:
        parts = urlsplit(signed_url)
    except ValueError as exc:
        raise URLError(f"Failed to parse signed URL: {exc}") from exc
    if not parts.netloc:
        raise URLError("Signed URL has no host")
    return urlunsplit(parts._replace(scheme=scheme, netloc=domain))


class MultipartObjectStorage:
    """Object storage with presigned, client-driven multipart uploads.

    Holds a generic backend for get/put/stat/delete and its own signing
    client for the multipart session calls and read URLs. The signing
    client uses query-string auth that does not cover the host, so read
    URLs can be re-pointed at a public bucket domain after signing.
    """

    def __init__(
        self,
        *,
        settings: "Settings",
        delegate: ObjectStorage | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            settings: Application settings containing S3 and multipart
                configuration.
            delegate: Generic backend to forward plain object operations to.
                Built from ``settings`` when omitted.

        Raises:
            ConfigurationError: If the bucket or credentials are missing.
        """
        require_store_settings(settings)
        self._settings = settings
        self._delegate = delegate or S3ObjectStorage(settings=settings)
        self.bucket: str = self._delegate.bucket
        self.chunk_size = int(settings.MULTIPART_CHUNK_SIZE)
        self.upload_expires = int(settings.MULTIPART_UPLOAD_EXPIRES)
        self.download_expires = int(settings.DOWNLOAD_URL_EXPIRES)
        self.bucket_domain = settings.STORAGE_BUCKET_DOMAIN
        self.download_scheme = settings.DOWNLOAD_URL_SCHEME
        self._sign_workers = int(settings.MULTIPART_SIGN_WORKERS)
        self._client = self._build_client(settings)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MultipartObjectStorage":
        return cls(settings=settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create the boto3 client used for multipart calls and signing."""
        return build_boto_client(
            settings, signature_version=settings.MULTIPART_SIGNATURE_VERSION
        )

    # Plain object operations

    def build_path(self, path: str) -> str:
        return self._delegate.build_path(path)

    def save(
        self,
        path: str,
        data: bytes | BinaryIO,
        *,
        content_type: str | None = None,
    ) -> int:
        return self._delegate.save(path, data, content_type=content_type)

    def open(self, path: str) -> bytes:
        return self._delegate.open(path)

    def stat(self, path: str) -> ObjectHead:
        return self._delegate.stat(path)

    def delete(self, path: str) -> None:
        self._delegate.delete(path)

    # Multipart sessions

    def initiate_session(self, path: str, size: int) -> MultipartSession:
        """Open one multipart session at the store.

        Args:
            path: Logical object path.
            size: Total object size in bytes.

        Returns:
            MultipartSession carrying the store-issued upload id.

        Raises:
            SessionError: If the store call fails or returns no upload id.
        """
        key = self.build_path(path)
        logger.debug(
            "multipart_initiate bucket=%s key=%s size=%s",
            self.bucket,
            key,
            size,
            extra={"extra": {"bucket": self.bucket, "key": key, "size": size}},
        )
        try:
            with observe_store_call("create_multipart_upload"):
                response = self._client.create_multipart_upload(
                    Bucket=self.bucket, Key=key
                )
        except Exception as exc:
            logger.error(
                "multipart_initiate_failed bucket=%s key=%s error=%s",
                self.bucket,
                key,
                exc,
            )
            raise SessionError(f"Failed to create multipart upload: {exc}") from exc

        upload_id = response.get("UploadId") if response else None
        if not upload_id:
            raise SessionError("S3 response missing UploadId")
        return MultipartSession(upload_id=str(upload_id), path=path, total_size=size)

    def _sign_part(self, key: str, upload_id: str, chunk: ChunkSpan) -> MultipartPart:
        try:
            with observe_store_call("presign_upload_part"):
                href = self._client.generate_presigned_url(
                    "upload_part",
                    Params={
                        "Bucket": self.bucket,
                        "Key": key,
                        "UploadId": upload_id,
                        "PartNumber": int(chunk.index),
                    },
                    ExpiresIn=self.upload_expires,
                )
        except Exception as exc:
            raise SigningError(
                f"Failed to generate presigned URL for part {chunk.index}: {exc}"
            ) from exc
        if not href:
            raise SigningError(
                f"Generated presigned URL for part {chunk.index} is empty"
            )

        return MultipartPart(
            index=chunk.index,
            offset=chunk.offset,
            length=chunk.length,
            endpoint=MultipartEndpoint(
                href=str(href),
                method="PUT",
                expires_in=self.upload_expires,
            ),
        )

    def issue_part_urls(
        self,
        session: MultipartSession,
        chunks: Sequence[ChunkSpan],
    ) -> list[MultipartPart]:
        """Presign one PUT URL per chunk.

        Signing is independent per part, so it runs on a thread pool when
        more than one worker is configured.

        Returns:
            Parts sorted by index.

        Raises:
            SigningError: If any URL cannot be issued.
        """
        key = self.build_path(session.path)
        if self._sign_workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(
                max_workers=min(self._sign_workers, len(chunks))
            ) as pool:
                parts = list(
                    pool.map(
                        lambda chunk: self._sign_part(key, session.upload_id, chunk),
                        chunks,
                    )
                )
        else:
            parts = [self._sign_part(key, session.upload_id, c) for c in chunks]
        return sorted(parts, key=lambda p: p.index)

    def verify_descriptor(self, session: MultipartSession) -> MultipartEndpoint:
        return MultipartEndpoint(
            params={"upload_id": session.upload_id},
            aggregation_params=dict(COMMIT_AGGREGATION),
        )

    def generate_multipart_parts(self, path: str, size: int) -> MultipartPlan:
        """Open a session and presign an upload URL for every chunk.

        Args:
            path: Logical object path.
            size: Total object size in bytes. Must be positive.

        Returns:
            MultipartPlan with the parts, no abort endpoint, and the verify
            descriptor telling clients how to shape the commit payload.

        Raises:
            PlanningError: If ``size`` is not positive or needs more than
                10000 parts. Raised before any store call.
            SessionError: If the session cannot be opened.
            SigningError: If a part URL cannot be issued. The session stays
                open at the store.
        """
        if size <= 0:
            raise PlanningError("size must be positive for a multipart upload")
        count = part_count(size, self.chunk_size)
        if count > MAX_PART_NUMBER:
            raise PlanningError(
                f"Object needs {count} parts, more than the {MAX_PART_NUMBER} allowed"
            )

        session = self.initiate_session(path, size)
        chunks = plan_chunks(size, self.chunk_size)
        parts = self.issue_part_urls(session, chunks)
        logger.info(
            "multipart_planned key=%s upload_id=%s parts=%s",
            self.build_path(path),
            session.upload_id,
            len(parts),
            extra={
                "extra": {
                    "key": self.build_path(path),
                    "upload_id": session.upload_id,
                    "parts": len(parts),
                }
            },
        )
        return MultipartPlan(
            session=session,
            parts=tuple(parts),
            abort=None,
            verify=self.verify_descriptor(session),
        )

    def commit_upload(self, path: str, payload: bytes | str) -> CommitPayload:
        """Complete a multipart session from a client completion payload.

        Args:
            path: Logical object path the session was opened for.
            payload: Raw JSON built by the client from the verify descriptor.

        Returns:
            The decoded payload that was submitted to the store.

        Raises:
            DecodeError: If the payload is malformed. No store call is made.
            CommitError: If the store rejects the completion. The original
                store exception is chained as ``__cause__``.
        """
        try:
            commit = decode_commit_payload(payload)
        except DecodeError:
            logger.error(
                "multipart_commit_decode_failed bytes=%d payload=%r",
                len(payload),
                payload[:MAX_LOGGED_PAYLOAD],
            )
            raise

        key = self.build_path(path)
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.index)}
                for part in sorted_part_ids(commit.part_ids)
            ]
        }
        logger.debug(
            "multipart_commit bucket=%s key=%s upload_id=%s parts=%s",
            self.bucket,
            key,
            commit.upload_id,
            len(commit.part_ids),
        )
        try:
            with observe_store_call("complete_multipart_upload"):
                self._client.complete_multipart_upload(
                    Bucket=self.bucket,
                    Key=key,
                    UploadId=commit.upload_id,
                    MultipartUpload=multipart_payload,
                )
        except Exception as exc:
            logger.warning(
                "multipart_commit_rejected key=%s upload_id=%s error=%s",
                key,
                commit.upload_id,
                exc,
            )
            raise CommitError(f"Failed to complete multipart upload: {exc}") from exc
        return commit

    # Read access

    def url(self, path: str, name: str | None = None) -> str:
        """Presign a GET URL and point it at the public bucket domain.

        Only scheme and host are replaced; path and query, including the
        signature, are left as signed. Without a configured bucket domain
        the signed URL is returned as is.

        Raises:
            URLError: If signing fails or the signed URL cannot be parsed.
        """
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": self.build_path(path)}
        if name:
            safe_filename = name.replace('"', '\\"')
            params["ResponseContentDisposition"] = (
                f'attachment; filename="{safe_filename}"'
            )

        try:
            with observe_store_call("presign_get_object"):
                signed = self._client.generate_presigned_url(
                    "get_object",
                    Params=params,
                    ExpiresIn=self.download_expires,
                )
        except Exception as exc:
            raise URLError(f"Failed to generate download URL: {exc}") from exc
        if not signed:
            raise URLError("Generated presigned URL is empty")

        if not self.bucket_domain:
            return str(signed)
        return rewrite_public_url(
            str(signed), domain=self.bucket_domain, scheme=self.download_scheme
        )
