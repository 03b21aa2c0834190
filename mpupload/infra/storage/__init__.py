"""Object storage abstraction layer.

This module provides protocol-based storage backends for S3-compatible
services, including a backend that hands out presigned multipart uploads.
"""

from .client import (
    ChunkSpan,
    CommitError,
    CommitPayload,
    ConfigurationError,
    DecodeError,
    InvalidKeyError,
    MultipartCapable,
    MultipartEndpoint,
    MultipartPart,
    MultipartPartID,
    MultipartPlan,
    MultipartSession,
    ObjectHead,
    ObjectStorage,
    PlanningError,
    SessionError,
    SigningError,
    StorageError,
    URLError,
)
from .registry import StorageRegistry, build_default_registry

__all__ = [
    "ChunkSpan",
    "CommitError",
    "CommitPayload",
    "ConfigurationError",
    "DecodeError",
    "InvalidKeyError",
    "MultipartCapable",
    "MultipartEndpoint",
    "MultipartPart",
    "MultipartPartID",
    "MultipartPlan",
    "MultipartSession",
    "ObjectHead",
    "ObjectStorage",
    "PlanningError",
    "SessionError",
    "SigningError",
    "StorageError",
    "StorageRegistry",
    "URLError",
    "build_default_registry",
]
