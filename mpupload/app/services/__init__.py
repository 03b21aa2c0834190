from .base import BaseService, InvalidPathError, ServiceError
from .upload_service import DownloadUrl, MultipartNotSupportedError, UploadService

__all__ = [
    "BaseService",
    "ServiceError",
    "InvalidPathError",
    "UploadService",
    "DownloadUrl",
    "MultipartNotSupportedError",
]
