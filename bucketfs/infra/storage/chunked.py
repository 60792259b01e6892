"""Decoder for ``STREAMING-AWS4-HMAC-SHA256-PAYLOAD`` request bodies.

Signed chunked uploads wrap the payload as::

    <hex-size>;chunk-signature=<sig>\\r\\n
    <chunk-bytes>\\r\\n
    ...
    0;chunk-signature=<sig>\\r\\n
    \\r\\n

Only the chunk bodies are written to the sink. Chunk signatures are logged
and otherwise ignored.
"""

from __future__ import annotations

import logging
import re
from typing import BinaryIO

from bucketfs.infra.storage.client import MalformedStreamError

STREAMING_PAYLOAD = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"

CRLF = b"\r\n"
READ_SIZE = 64 * 1024
# size line = hex digits + optional extensions; anything longer is garbage
MAX_SIZE_LINE = 4096

_HEX_SIZE = re.compile(r"[0-9a-fA-F]+")

log = logging.getLogger("storage")


def is_streaming_payload(content_sha256: str | None) -> bool:
    return (content_sha256 or "").strip() == STREAMING_PAYLOAD


def _read_size_line(source: BinaryIO) -> tuple[int, str | None]:
    line = source.readline(MAX_SIZE_LINE)
    if not line or not line.endswith(b"\n"):
        raise MalformedStreamError("unexpected end of stream while reading chunk size")

    try:
        text = line.decode("ascii").strip()
    except UnicodeDecodeError as exc:
        raise MalformedStreamError("chunk size line is not ASCII") from exc

    size_text, sep, extension = text.partition(";")
    size_text = size_text.strip()
    if not _HEX_SIZE.fullmatch(size_text):
        raise MalformedStreamError(f"invalid chunk size {size_text!r}")
    return int(size_text, 16), (extension if sep else None)


def _copy_exact(source: BinaryIO, sink: BinaryIO, size: int) -> None:
    remaining = size
    while remaining > 0:
        data = source.read(min(READ_SIZE, remaining))
        if not data:
            raise MalformedStreamError(
                f"chunk truncated: {size - remaining} of {size} bytes read"
            )
        sink.write(data)
        remaining -= len(data)


def decode_chunked_stream(source: BinaryIO, sink: BinaryIO) -> int:
    """Write the concatenated chunk bodies of ``source`` to ``sink``.

    Returns the number of payload bytes written.

    Raises:
        MalformedStreamError: On an unreadable or non-hex size line, a chunk
            shorter than declared, or a chunk not followed by CRLF.
    """
    total = 0
    chunks = 0
    while True:
        size, extension = _read_size_line(source)
        if extension is not None:
            log.debug("chunk_extension index=%s value=%s", chunks, extension)
        if size == 0:
            break

        _copy_exact(source, sink, size)
        if source.read(2) != CRLF:
            raise MalformedStreamError("chunk data not terminated by CRLF")

        total += size
        chunks += 1

    log.debug("chunked_stream_decoded chunks=%s bytes=%s", chunks, total)
    return total


def copy_stream(source: BinaryIO, sink: BinaryIO) -> int:
    total = 0
    while True:
        data = source.read(READ_SIZE)
        if not data:
            return total
        sink.write(data)
        total += len(data)


def write_payload(
    source: BinaryIO, sink: BinaryIO, content_sha256: str | None
) -> int:
    """Copy an upload body to ``sink``, unwrapping aws-chunked framing if signalled."""
    if is_streaming_payload(content_sha256):
        return decode_chunked_stream(source, sink)
    return copy_stream(source, sink)
