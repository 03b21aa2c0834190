"""Upload API router.

This module exposes multipart planning, commit and download URL issuance
over REST. Chunk bytes never reach these endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from starlette.concurrency import run_in_threadpool

from mpupload.api.v1.deps import get_upload_service
from mpupload.api.v1.schemas.uploads import (
    DownloadUrlOut,
    MultipartPlanOut,
    MultipartPlanRequest,
)
from mpupload.app.services.base import InvalidPathError
from mpupload.app.services.upload_service import (
    MultipartNotSupportedError,
    UploadService,
)
from mpupload.infra.storage.client import (
    CommitError,
    ConfigurationError,
    DecodeError,
    InvalidKeyError,
    PlanningError,
    SessionError,
    SigningError,
    StorageError,
    URLError,
)

router = APIRouter()

_STATUS_BY_ERROR: tuple[tuple[type[Exception], int, str], ...] = (
    (InvalidPathError, 400, "invalid_path"),
    (InvalidKeyError, 400, "invalid_path"),
    (PlanningError, 400, "invalid_size"),
    (DecodeError, 400, "invalid_commit_payload"),
    (CommitError, 409, "commit_rejected"),
    (SessionError, 502, "session_failed"),
    (SigningError, 502, "signing_failed"),
    (URLError, 502, "url_failed"),
    (MultipartNotSupportedError, 501, "multipart_not_supported"),
    (ConfigurationError, 503, "storage_not_configured"),
    (StorageError, 502, "storage_error"),
)


def _to_http_error(exc: Exception) -> HTTPException:
    for error_type, status_code, error_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(
                status_code=status_code,
                detail={"message": str(exc), "error_code": error_code},
            )
    raise exc


@router.post(
    "/objects/multipart",
    response_model=MultipartPlanOut,
    status_code=status.HTTP_201_CREATED,
    summary="Plan multipart upload",
    description="Open a multipart session and presign one upload URL per chunk.",
)
def plan_multipart_upload(
    payload: MultipartPlanRequest,
    service: UploadService = Depends(get_upload_service),
) -> MultipartPlanOut:
    try:
        plan = service.plan_multipart_upload(payload.path, payload.size)
    except (StorageError, InvalidPathError, MultipartNotSupportedError) as exc:
        raise _to_http_error(exc) from exc
    return MultipartPlanOut.from_plan(plan)


@router.post(
    "/objects/multipart/commit",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Commit multipart upload",
    description=(
        "Complete a multipart session. The body is the JSON document described "
        "by the verify descriptor returned at planning time."
    ),
)
async def commit_multipart_upload(
    request: Request,
    path: str = Query(min_length=1),
    service: UploadService = Depends(get_upload_service),
) -> Response:
    raw = await request.body()
    try:
        await run_in_threadpool(service.commit_multipart_upload, path, raw)
    except (StorageError, InvalidPathError, MultipartNotSupportedError) as exc:
        raise _to_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/objects/download-url",
    response_model=DownloadUrlOut,
    summary="Get download URL",
    description="Generate a presigned URL for downloading an object.",
)
def get_download_url(
    path: str = Query(min_length=1),
    name: str | None = Query(default=None),
    service: UploadService = Depends(get_upload_service),
) -> DownloadUrlOut:
    try:
        result = service.issue_download_url(path, name)
    except (StorageError, InvalidPathError) as exc:
        raise _to_http_error(exc) from exc
    return DownloadUrlOut(url=result.url, expires_in=result.expires_in)
