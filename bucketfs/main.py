import logging
import os

import uvicorn
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from bucketfs.api import xml
from bucketfs.api.deps import get_object_store, get_request_id, host_id, require_credentials
from bucketfs.api.routers.buckets import router as buckets_router
from bucketfs.api.routers.objects import router as objects_router
from bucketfs.api.routers.probe import router as probe_router
from bucketfs.common.config import get_settings
from bucketfs.common.logging import setup_logging
from bucketfs.infra.observability.metrics import metrics_response
from bucketfs.infra.observability.middleware import MetricsMiddleware
from bucketfs.infra.storage.client import (
    BucketNotFoundError,
    InvalidNameError,
    MalformedStreamError,
    ObjectNotFoundError,
    StorageError,
)
from bucketfs.services.base import BucketConflictError, MalformedRequestError, ServiceError

ERROR_CODE_BY_STATUS = {
    400: "InvalidRequest",
    401: "AccessDenied",
    403: "AccessDenied",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
    411: "MissingContentLength",
    413: "EntityTooLarge",
    500: "InternalError",
    501: "NotImplemented",
    503: "ServiceUnavailable",
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
        return "InvalidArgument"
    return ERROR_CODE_BY_STATUS.get(status_code, "InternalError")


def _classify_error(exc: Exception) -> tuple[int, str, str | None]:
    """Map a storage or service failure to (status, S3 code, bucket name)."""
    if isinstance(exc, BucketNotFoundError):
        return 404, "NoSuchBucket", exc.bucket
    if isinstance(exc, ObjectNotFoundError):
        return 404, "NoSuchKey", None
    if isinstance(exc, BucketConflictError):
        return 409, "BucketAlreadyExists", exc.bucket
    if isinstance(exc, MalformedRequestError):
        return 400, exc.code, None
    if isinstance(exc, InvalidNameError):
        code = "InvalidBucketName" if exc.kind == "bucket" else "InvalidObjectName"
        return 400, code, None
    if isinstance(exc, MalformedStreamError):
        return 400, "IncompleteBody", None
    return 500, "InternalError", None


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    bucket: str | None = None,
    headers: dict[str, str] | None = None,
) -> Response:
    if request.method == "HEAD":
        # HEAD responses carry no body
        return Response(status_code=status_code, headers=headers)
    document = xml.error_document(
        code,
        message,
        request_id=get_request_id(request),
        host_id=host_id(),
        bucket=bucket,
    )
    return xml.to_xml_response(document, status_code=status_code, headers=headers)


def _storage_root_status(root: str) -> dict[str, object]:
    detail: dict[str, object] = {}
    if not os.path.isdir(root):
        detail["storage_root"] = "missing"
    elif not os.access(root, os.W_OK | os.X_OK):
        detail["storage_root"] = "not_writable"
    return detail


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    app = FastAPI(
        title="bucketfs",
        version="v1.0",
        description="S3-compatible gateway over a local directory tree",
    )

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["ETag", "x-amz-request-id", "x-amz-meta-stored-key"],
        )

    # Access log and request ids are always on; metrics follow ENABLE_METRICS.
    app.add_middleware(MetricsMiddleware)

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    @app.get("/ready", include_in_schema=False)
    def ready():
        detail = _storage_root_status(settings.STORAGE_ROOT)
        if detail:
            return {"status": "not_ready", "detail": detail}
        return {"status": "ready"}

    if settings.ENABLE_METRICS:
        app.add_api_route(
            "/metrics",
            metrics_response,
            methods=["GET"],
            include_in_schema=False,
        )

    # Routers; bucket routes must precede object routes so "/b/" is a bucket.
    app.include_router(probe_router, tags=["probe"])
    app.include_router(
        buckets_router,
        tags=["buckets"],
        dependencies=[Depends(require_credentials)],
    )
    app.include_router(
        objects_router,
        tags=["objects"],
        dependencies=[Depends(require_credentials)],
    )

    @app.on_event("startup")
    def on_startup() -> None:
        startup_logger = logging.getLogger("bucketfs.startup")
        root = settings.storage_root_path.resolve()
        startup_logger.info(
            "preparing storage root [event=storage_root_check] (root=%s)", root
        )
        try:
            get_object_store().ensure_root()
        except StorageError as exc:
            startup_logger.error(
                "storage root is unusable, aborting startup"
                " [event=storage_root_failed] (root=%s, error=%s)",
                root,
                exc,
            )
            raise
        startup_logger.info(
            "gateway ready [event=startup_complete] (root=%s, region=%s, auth=%s, metrics=%s)",
            root,
            settings.S3_REGION,
            "on" if settings.AUTH_ENABLED else "off",
            "on" if settings.ENABLE_METRICS else "off",
        )

    @app.exception_handler(StorageError)
    @app.exception_handler(ServiceError)
    async def gateway_exception_handler(request: Request, exc: Exception):
        logger = logging.getLogger("http")
        status_code, code, bucket = _classify_error(exc)
        logger.log(
            logging.WARNING if status_code < 500 else logging.ERROR,
            "gateway_error status=%s code=%s detail=%s method=%s path=%s request_id=%s",
            status_code,
            code,
            exc,
            request.method,
            request.url.path,
            get_request_id(request),
            exc_info=exc if status_code >= 500 else None,
            extra={
                "extra": {
                    "status": status_code,
                    "error_code": code,
                    "detail": str(exc),
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": get_request_id(request),
                }
            },
        )
        return _error_response(request, status_code, code, str(exc), bucket=bucket)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger = logging.getLogger("http")
        normalized_detail, code_override = _normalize_detail(exc.detail)
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            get_request_id(request),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": get_request_id(request),
                }
            },
        )
        return _error_response(
            request,
            exc.status_code,
            _resolve_error_code(exc.status_code, code_override),
            str(normalized_detail or "HTTP error"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        messages = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in exc.errors()
        ]
        return _error_response(
            request,
            400,
            _resolve_error_code(422),
            "; ".join(messages) or "Invalid request",
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logging.getLogger("http").error(
            "unhandled_exception method=%s path=%s request_id=%s",
            request.method,
            request.url.path,
            get_request_id(request),
            exc_info=exc,
        )
        return _error_response(
            request, 500, "InternalError", "We encountered an internal error. Please try again."
        )

    return app


app = create_app()

if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run("bucketfs.main:app", host=_settings.HOST, port=_settings.PORT)
