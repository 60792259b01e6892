"""Object API router.

Single-object operations on ``/{bucket}/{key}``. Upload bodies are spooled
off the event loop and then handed to the store, which unwraps aws-chunked
framing when ``X-Amz-Content-Sha256`` asks for it.
"""

from __future__ import annotations

import tempfile
from datetime import datetime, timezone
from typing import BinaryIO, Iterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from bucketfs.api.deps import get_gateway_service, get_request_id, host_id
from bucketfs.api.xml import format_http_date
from bucketfs.infra.observability.metrics import STORED_BYTES
from bucketfs.infra.storage.chunked import READ_SIZE, is_streaming_payload
from bucketfs.infra.storage.client import ObjectInfo
from bucketfs.services.gateway_service import GatewayService, parse_decoded_content_length

router = APIRouter()

# Bodies above this size spill from memory to a temporary file.
SPOOL_MAX_MEMORY = 8 * 1024 * 1024


def _content_disposition(key: str) -> str:
    filename = key.rsplit("/", 1)[-1]
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename)}"
    return f'attachment; filename="{filename}"'


def _object_headers(key: str, info: ObjectInfo) -> dict[str, str]:
    return {
        "Content-Length": str(info.size),
        "Last-Modified": format_http_date(info.last_modified),
        "Content-Disposition": _content_disposition(key),
        "Accept-Ranges": "none",
    }


def _iter_file(handle: BinaryIO) -> Iterator[bytes]:
    with handle:
        while True:
            data = handle.read(READ_SIZE)
            if not data:
                break
            yield data


async def _spool_body(request: Request) -> tempfile.SpooledTemporaryFile:
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
    try:
        async for chunk in request.stream():
            if chunk:
                await run_in_threadpool(spool.write, chunk)
    except BaseException:
        spool.close()
        raise
    spool.seek(0)
    return spool


@router.put("/{bucket}/{key:path}", summary="Upload object")
async def put_object(
    bucket: str,
    key: str,
    request: Request,
    x_amz_content_sha256: str | None = Header(default=None),
    x_amz_decoded_content_length: str | None = Header(default=None),
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    expected_size = parse_decoded_content_length(x_amz_decoded_content_length)
    await run_in_threadpool(service.head_bucket, bucket)

    spool = await _spool_body(request)
    with spool:
        stored = await run_in_threadpool(
            service.put_object,
            bucket,
            key,
            spool,
            content_sha256=x_amz_content_sha256,
            expected_size=expected_size,
        )

    chunked = is_streaming_payload(x_amz_content_sha256)
    STORED_BYTES.labels("true" if chunked else "false").inc(stored.size)

    headers = {
        "ETag": f'"{stored.etag}"',
        "x-amz-request-id": get_request_id(request),
        "x-amz-id-2": host_id(),
        "Date": format_http_date(datetime.now(timezone.utc)),
    }
    if stored.renamed:
        headers["x-amz-meta-stored-key"] = quote(stored.key)
    return Response(status_code=status.HTTP_200_OK, headers=headers)


@router.head("/{bucket}/{key:path}", summary="Check object")
def head_object(
    bucket: str,
    key: str,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    info = service.head_object(bucket, key)
    headers = _object_headers(key, info)
    return Response(
        status_code=status.HTTP_200_OK,
        headers=headers,
        media_type="application/octet-stream",
    )


@router.get("/{bucket}/{key:path}", summary="Download object")
def get_object(
    bucket: str,
    key: str,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    info, handle = service.get_object(bucket, key)
    return StreamingResponse(
        _iter_file(handle),
        media_type="application/octet-stream",
        headers=_object_headers(key, info),
    )


@router.delete("/{bucket}/{key:path}", status_code=204, summary="Delete object")
def delete_object(
    bucket: str,
    key: str,
    service: GatewayService = Depends(get_gateway_service),
) -> Response:
    service.delete_object(bucket, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
