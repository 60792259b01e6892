import json
import logging
import re
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from bucketfs.common.config import get_settings
from bucketfs.infra.observability.metrics import LATENCY, REQUESTS

logger = logging.getLogger("http")

TRACE_BODY_LIMIT = 2048
TEXTUAL_CONTENT_TYPES = ("application/xml", "text/", "application/json")
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "passwd",
        "pwd",
        "secret",
        "token",
        "access_token",
        "api_key",
        "x-api-key",
        "authorization",
        "secretaccesskey",
        "sessiontoken",
    }
)

_TEXT_MASKS = [
    # token=xxx / password: xxx
    (
        re.compile(
            r"(?i)\b(token|secret|api_key|x-api-key|password|authorization)"
            r"\s*[:=]\s*(?:(?:basic|bearer)\s+)?\S+"
        ),
        lambda m: f"{m.group(1)}: ***",
    ),
    # <SecretAccessKey>xxx</SecretAccessKey> and friends in S3 XML bodies
    (
        re.compile(r"(?i)<(SecretAccessKey|SessionToken|Password)>[^<]*</\1>"),
        lambda m: f"<{m.group(1)}>***</{m.group(1)}>",
    ),
]


def new_request_id() -> str:
    # S3 风格的 16 位大写十六进制请求 ID
    return uuid.uuid4().hex[:16].upper()


def _is_textual(content_type: str | None) -> bool:
    if not content_type:
        return False
    lowered = content_type.lower()
    return any(lowered.startswith(prefix) for prefix in TEXTUAL_CONTENT_TYPES)


def _truncate(text: str) -> str:
    if len(text) > TRACE_BODY_LIMIT:
        return text[:TRACE_BODY_LIMIT] + "...<truncated>"
    return text


def mask_mapping(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: "***" if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else mask_mapping(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [mask_mapping(x) for x in obj]
    return obj


def mask_text(text: str) -> str:
    for pattern, replacement in _TEXT_MASKS:
        text = pattern.sub(replacement, text)
    return text


def describe_body(raw_body: bytes, content_type: str | None) -> str | None:
    """Render a traced body: masked text for JSON/XML/text, a byte count otherwise."""
    if not raw_body:
        return None
    if not _is_textual(content_type):
        return f"<binary {len(raw_body)} bytes>"
    decoded = raw_body.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(decoded)
    except ValueError:
        return _truncate(mask_text(decoded))
    return _truncate(json.dumps(mask_mapping(parsed), ensure_ascii=False))


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _route_template(request: Request) -> str:
    # 低基数：优先使用路由模板而不是实际路径（对象键）
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def _trace_request_body(request: Request) -> str:
    content_type = request.headers.get("Content-Type")
    if not _is_textual(content_type):
        # 上传的对象体不读入内存，只记录长度
        return f"<{request.headers.get('Content-Length') or 0} bytes>"
    try:
        raw_body = await request.body()
    except Exception:
        return "<unavailable>"

    async def receive():
        return {"type": "http.request", "body": raw_body, "more_body": False}

    request._receive = receive
    return describe_body(raw_body, content_type) or ""


async def _trace_response_body(response: Response) -> str:
    content_type = response.headers.get("Content-Type")
    if not _is_textual(content_type):
        return f"<{response.headers.get('Content-Length') or 0} bytes>"
    try:
        body = b""
        async for chunk in response.body_iterator:
            body += chunk
    except Exception:
        return "<unavailable>"
    response.body_iterator = iterate_in_threadpool(iter([body]))
    return describe_body(body, content_type) or ""


class MetricsMiddleware(BaseHTTPMiddleware):
    """Request ids, access log, Prometheus metrics and optional body tracing."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or new_request_id()
        request.state.request_id = request_id
        settings = get_settings()

        fields: dict[str, Any] = {
            "method": request.method,
            "query": request.url.query,
            "request_id": request_id,
            "client_ip": _client_ip(request),
            "user_agent": request.headers.get("User-Agent"),
        }
        if settings.TRACE_HTTP:
            fields["request_body"] = await _trace_request_body(request)

        try:
            response = await call_next(request)
        except Exception as exc:
            fields.update(
                route=request.url.path,
                status=500,
                duration_ms=round((time.perf_counter() - start) * 1000, 3),
                access_key=getattr(request.state, "access_key", "<anonymous>"),
                exception=repr(exc),
            )
            logger.exception(
                "request_error method=%s route=%s status=500 request_id=%s",
                request.method,
                fields["route"],
                request_id,
                extra={"extra": fields},
            )
            raise

        elapsed = time.perf_counter() - start
        route = _route_template(request)
        if settings.ENABLE_METRICS:
            REQUESTS.labels(request.method, route, str(response.status_code)).inc()
            LATENCY.labels(request.method, route).observe(elapsed)

        response.headers.setdefault("X-Request-Id", request_id)
        response.headers.setdefault("x-amz-request-id", request_id)

        if settings.TRACE_HTTP:
            fields["response_body"] = await _trace_response_body(response)

        fields.update(
            route=route,
            status=response.status_code,
            duration_ms=round(elapsed * 1000, 3),
            access_key=getattr(request.state, "access_key", "<anonymous>"),
        )
        level = logging.INFO
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f "
            "request_id=%s access_key=%s client_ip=%s",
            request.method,
            route,
            response.status_code,
            fields["duration_ms"],
            request_id,
            fields["access_key"],
            fields["client_ip"] or "-",
            extra={"extra": fields},
        )
        return response
