"""Tests for the aws-chunked payload decoder."""

from __future__ import annotations

import io

import pytest

from bucketfs.infra.storage.chunked import (
    STREAMING_PAYLOAD,
    decode_chunked_stream,
    is_streaming_payload,
    write_payload,
)
from bucketfs.infra.storage.client import MalformedStreamError

SIG = ";chunk-signature=0055627c9e194cb4542bae2aa5492e3c1575bbb81b612b7d234b86a503ef5497"


def frame(*chunks: bytes, signed: bool = True) -> bytes:
    ext = SIG if signed else ""
    out = b""
    for chunk in chunks:
        out += f"{len(chunk):x}{ext}\r\n".encode() + chunk + b"\r\n"
    out += f"0{ext}\r\n\r\n".encode()
    return out


def decode(body: bytes) -> tuple[int, bytes]:
    sink = io.BytesIO()
    written = decode_chunked_stream(io.BytesIO(body), sink)
    return written, sink.getvalue()


class TestDecodeChunkedStream:
    def test_concatenates_chunk_bodies(self):
        written, data = decode(frame(b"hello ", b"chunked ", b"world"))
        assert data == b"hello chunked world"
        assert written == len(data)

    def test_zero_chunk_only_yields_empty_payload(self):
        assert decode(b"0" + SIG.encode() + b"\r\n\r\n") == (0, b"")

    def test_unsigned_chunks(self):
        assert decode(frame(b"abc", signed=False)) == (3, b"abc")

    def test_uppercase_hex_sizes(self):
        payload = b"x" * 0xAB
        body = b"AB\r\n" + payload + b"\r\n0\r\n\r\n"
        assert decode(body)[1] == payload

    def test_large_chunk_spans_multiple_reads(self):
        payload = bytes(range(256)) * 1024  # 256 KiB
        assert decode(frame(payload))[1] == payload

    def test_trailing_bytes_after_final_chunk_are_ignored(self):
        body = frame(b"data") + b"x-amz-checksum-crc32:AAAAAA==\r\n"
        assert decode(body)[1] == b"data"

    def test_non_hex_size_is_rejected(self):
        with pytest.raises(MalformedStreamError):
            decode(b"zz;chunk-signature=abc\r\nhello\r\n0\r\n\r\n")

    def test_empty_size_is_rejected(self):
        with pytest.raises(MalformedStreamError):
            decode(b";chunk-signature=abc\r\nhello\r\n0\r\n\r\n")

    def test_short_chunk_body_is_rejected(self):
        with pytest.raises(MalformedStreamError):
            decode(b"10\r\nshort")

    def test_missing_crlf_after_chunk_is_rejected(self):
        with pytest.raises(MalformedStreamError):
            decode(b"5\r\nhelloXX0\r\n\r\n")

    def test_stream_ending_before_final_chunk_is_rejected(self):
        with pytest.raises(MalformedStreamError):
            decode(b"5\r\nhello\r\n")

    def test_empty_stream_is_rejected(self):
        with pytest.raises(MalformedStreamError):
            decode(b"")


class TestWritePayload:
    def test_raw_payload_is_copied_verbatim(self):
        raw = frame(b"not decoded")
        sink = io.BytesIO()
        assert write_payload(io.BytesIO(raw), sink, "UNSIGNED-PAYLOAD") == len(raw)
        assert sink.getvalue() == raw

    def test_missing_signal_copies_verbatim(self):
        sink = io.BytesIO()
        write_payload(io.BytesIO(b"plain"), sink, None)
        assert sink.getvalue() == b"plain"

    def test_streaming_signal_decodes(self):
        sink = io.BytesIO()
        write_payload(io.BytesIO(frame(b"ab", b"cd")), sink, STREAMING_PAYLOAD)
        assert sink.getvalue() == b"abcd"


@pytest.mark.parametrize(
    ("signal", "expected"),
    [
        (STREAMING_PAYLOAD, True),
        (f" {STREAMING_PAYLOAD} ", True),
        ("UNSIGNED-PAYLOAD", False),
        ("e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855", False),
        ("", False),
        (None, False),
    ],
)
def test_is_streaming_payload(signal, expected):
    assert is_streaming_payload(signal) is expected
