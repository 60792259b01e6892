from __future__ import annotations

import base64
import hashlib
import logging
import socket
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Request

from bucketfs.common.auth import AuthenticationError, Authenticator, Principal
from bucketfs.common.config import get_settings
from bucketfs.infra.observability.middleware import new_request_id
from bucketfs.infra.storage.filesystem import FileSystemObjectStore
from bucketfs.services.gateway_service import GatewayService

logger = logging.getLogger("http")


@lru_cache(maxsize=8)
def _store_for_root(root: str) -> FileSystemObjectStore:
    return FileSystemObjectStore(root)


def get_object_store() -> FileSystemObjectStore:
    return _store_for_root(get_settings().STORAGE_ROOT)


def get_gateway_service(
    store: FileSystemObjectStore = Depends(get_object_store),
) -> GatewayService:
    return GatewayService(store, settings=get_settings())


@lru_cache(maxsize=1)
def host_id() -> str:
    digest = hashlib.sha256(socket.gethostname().encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("X-Request-Id") or new_request_id()
        request.state.request_id = request_id
    return request_id


def require_credentials(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Principal:
    authenticator = Authenticator(get_settings())
    try:
        principal = authenticator.authenticate(authorization)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401,
            detail={
                "message": str(exc),
                "error_code": "AccessDenied",
            },
            headers={"WWW-Authenticate": 'Basic realm="bucketfs"'},
        ) from exc
    request.state.access_key = principal.access_key
    return principal
