from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# 低基数标签：使用路由模板（如 /{bucket}/{key:path}），避免对象键导致高基数
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

STORED_BYTES = Counter(
    "object_stored_bytes_total",
    "Payload bytes persisted by object uploads",
    ["chunked"],
)


def metrics_response() -> Response:
    # 以路由方式暴露，避免 /metrics 被 /{bucket} 路由吞掉
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
