"""Storage protocols, data types and errors.

This module defines the interfaces shared by the storage backends: the
generic object operations every backend provides, and the multipart
capability that only some backends expose.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Protocol, Sequence, runtime_checkable


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class ConfigurationError(StorageError):
    """Raised when a backend cannot be built from the supplied settings."""


class InvalidKeyError(StorageError):
    """Raised when a logical path does not map to a usable object key."""


class PlanningError(StorageError):
    """Raised when an object cannot be split into a valid set of parts."""


class SessionError(StorageError):
    """Raised when the store refuses to open a multipart session."""


class SigningError(StorageError):
    """Raised when a presigned part URL cannot be issued."""


class DecodeError(StorageError):
    """Raised when a commit payload is malformed or incomplete."""


class CommitError(StorageError):
    """Raised when the store rejects a multipart completion."""


class URLError(StorageError):
    """Raised when a download URL cannot be signed or rewritten."""


@dataclass(frozen=True, slots=True)
class ChunkSpan:
    """One planned byte range of an object, indexed from 1."""

    index: int
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True, slots=True)
class MultipartSession:
    """An open multipart upload at the store."""

    upload_id: str
    path: str
    total_size: int


@dataclass(frozen=True, slots=True)
class MultipartEndpoint:
    """Describes how a client should call the store (or the service) next."""

    href: str | None = None
    method: str | None = None
    expires_in: int | None = None
    headers: dict[str, str] | None = None
    params: dict[str, str] | None = None
    aggregation_params: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key in (
            "expires_in",
            "href",
            "method",
            "headers",
            "params",
            "aggregation_params",
        ):
            value = getattr(self, key)
            if value is not None:
                payload[key] = dict(value) if isinstance(value, dict) else value
        return payload


@dataclass(frozen=True, slots=True)
class MultipartPart:
    """A planned chunk together with its presigned upload endpoint."""

    index: int
    offset: int
    length: int
    endpoint: MultipartEndpoint

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "pos": self.offset,
            "size": self.length,
            "endpoint": self.endpoint.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class MultipartPartID:
    """A chunk reported back by the uploading client."""

    index: int
    etag: str


@dataclass(frozen=True, slots=True)
class CommitPayload:
    """Decoded completion payload."""

    upload_id: str
    part_ids: tuple[MultipartPartID, ...] = field(default_factory=tuple)

    @property
    def indices(self) -> list[int]:
        return [part.index for part in self.part_ids]


@dataclass(frozen=True, slots=True)
class MultipartPlan:
    """Everything a caller needs to drive a multipart upload."""

    session: MultipartSession
    parts: tuple[MultipartPart, ...]
    abort: MultipartEndpoint | None
    verify: MultipartEndpoint

    @property
    def upload_id(self) -> str:
        return self.session.upload_id


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    size_bytes: int
    etag: str | None
    content_type: str | None


class ObjectStorage(Protocol):
    """Generic object operations every backend provides."""

    bucket: str

    def build_path(self, path: str) -> str:
        """Map a logical path to the object key inside the bucket."""
        ...

    def save(
        self,
        path: str,
        data: bytes | BinaryIO,
        *,
        content_type: str | None = None,
    ) -> int:
        """Store an object in a single request and return its size."""
        ...

    def open(self, path: str) -> bytes:
        """Read a whole object."""
        ...

    def stat(self, path: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        ...

    def delete(self, path: str) -> None:
        """Delete an object."""
        ...

    def url(self, path: str, name: str | None = None) -> str:
        """Return a time-limited read URL for an object."""
        ...


@runtime_checkable
class MultipartCapable(Protocol):
    """Backends that can hand out presigned multipart sessions.

    Implementations plan a session for ``(path, size)``, accept a raw
    commit payload, and sign read URLs for the finished object.
    """

    def generate_multipart_parts(self, path: str, size: int) -> MultipartPlan:
        """Open a session and presign one upload URL per chunk.

        Raises:
            PlanningError: If ``size`` cannot be split into valid parts.
            SessionError: If the store refuses to open the session.
            SigningError: If any part URL cannot be issued.
        """
        ...

    def commit_upload(self, path: str, payload: bytes | str) -> CommitPayload:
        """Decode ``payload`` and complete the session it names.

        Raises:
            DecodeError: If the payload is malformed. No store call is made.
            CommitError: If the store rejects the completion.
        """
        ...

    def url(self, path: str, name: str | None = None) -> str:
        """Return a presigned, publicly addressable read URL.

        Raises:
            URLError: If the URL cannot be signed or rewritten.
        """
        ...


def sorted_part_ids(parts: Sequence[MultipartPartID]) -> list[MultipartPartID]:
    return sorted(parts, key=lambda p: p.index)
