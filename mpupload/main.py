import logging

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mpupload.api.v1.deps import get_storage, require_api_key
from mpupload.api.v1.routers.uploads import router as uploads_router
from mpupload.common.config import Settings, get_settings
from mpupload.common.logging import setup_logging
from mpupload.infra.observability.metrics import metrics_app
from mpupload.infra.observability.middleware import MetricsMiddleware
from mpupload.infra.storage.client import MultipartCapable, ObjectStorage
from mpupload.infra.storage.registry import StorageRegistry, build_default_registry

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_error",
    501: "not_implemented",
    502: "bad_gateway",
    503: "service_unavailable",
}


def _normalize_detail(detail):
    if isinstance(detail, dict):
        maybe_code = detail.get("error_code")
        cleaned = {k: v for k, v in detail.items() if k != "error_code"}
        if len(cleaned) == 1 and "message" in cleaned:
            cleaned = cleaned["message"]
        if not cleaned:
            cleaned = None
        return cleaned, maybe_code if isinstance(maybe_code, str) else None
    return detail, None


def _resolve_error_code(status_code: int, override: str | None = None) -> str:
    if override:
        return override
    if status_code == 422:
        return "validation_error"
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _describe_storage_target(settings: Settings) -> str:
    parts = [f"storage_type={settings.STORAGE_TYPE}"]
    if settings.S3_ENDPOINT_URL:
        parts.append(f"endpoint={settings.S3_ENDPOINT_URL}")
    parts.append(f"bucket={settings.S3_BUCKET or '<unset>'}")
    if settings.S3_PREFIX:
        parts.append(f"prefix={settings.S3_PREFIX}")
    if settings.STORAGE_BUCKET_DOMAIN:
        parts.append(f"bucket_domain={settings.STORAGE_BUCKET_DOMAIN}")
    return ", ".join(parts)


def create_app(registry: StorageRegistry | None = None) -> FastAPI:
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title="Multipart Upload Service",
        version="v1.0",
        description="Presigned multipart upload orchestration for S3-compatible stores",
    )
    app.state.storage_registry = registry or build_default_registry()
    app.state.storage = None

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(
        uploads_router,
        prefix="/api/v1",
        tags=["uploads"],
        dependencies=[Depends(require_api_key)],
    )

    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.on_event("startup")
    def on_startup() -> None:
        startup_logger = logging.getLogger("mpupload.startup")
        startup_logger.info(
            "Storage backends available: %s [event=storage_registry] (%s)",
            ", ".join(app.state.storage_registry.names()),
            _describe_storage_target(settings),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = logging.getLogger("http")
        normalized_detail, code_override = _normalize_detail(exc.detail)
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            media_type="application/problem+json",
            content={
                "type": "about:blank",
                "title": "HTTP Error",
                "status": exc.status_code,
                "detail": normalized_detail,
                "error_code": _resolve_error_code(exc.status_code, code_override),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=422,
            media_type="application/problem+json",
            content={
                "type": "about:blank",
                "title": "Validation Error",
                "status": 422,
                "detail": jsonable_encoder(exc.errors()),
                "error_code": _resolve_error_code(422),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    def ready(storage: ObjectStorage = Depends(get_storage)):
        return {
            "status": "ready",
            "storage_type": settings.STORAGE_TYPE,
            "multipart": isinstance(storage, MultipartCapable),
        }

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("mpupload.main:app", host="0.0.0.0", port=8000, reload=True)
