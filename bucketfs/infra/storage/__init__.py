"""Object storage layer.

This package maps buckets and objects onto a directory tree and unwraps
aws-chunked upload bodies before they are persisted.
"""

from .chunked import STREAMING_PAYLOAD, decode_chunked_stream, is_streaming_payload
from .client import (
    BucketInfo,
    BucketNotFoundError,
    InvalidNameError,
    MalformedStreamError,
    NotFoundError,
    ObjectInfo,
    ObjectListing,
    ObjectNotFoundError,
    ObjectStore,
    StorageError,
    StorageIOError,
    StoredObject,
)
from .filesystem import FileSystemObjectStore
from .paths import PathResolver

__all__ = [
    "STREAMING_PAYLOAD",
    "BucketInfo",
    "BucketNotFoundError",
    "FileSystemObjectStore",
    "InvalidNameError",
    "MalformedStreamError",
    "NotFoundError",
    "ObjectInfo",
    "ObjectListing",
    "ObjectNotFoundError",
    "ObjectStore",
    "PathResolver",
    "StorageError",
    "StorageIOError",
    "StoredObject",
    "decode_chunked_stream",
    "is_streaming_payload",
]
