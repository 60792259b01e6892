from __future__ import annotations

import base64
import binascii
import hmac
import logging
from dataclasses import dataclass

from bucketfs.common.config import Settings

logger = logging.getLogger("auth")

AWS_SIGV4_SCHEME = "AWS4-HMAC-SHA256"


class AuthenticationError(Exception):
    """Raised when authentication fails."""


@dataclass(frozen=True)
class Principal:
    access_key: str
    source: str

    @property
    def is_anonymous(self) -> bool:
        return self.source == "anonymous"


class Authenticator:
    def __init__(self, settings: Settings):
        self._settings = settings

    def authenticate(self, authorization_header: str | None) -> Principal:
        if not self._settings.AUTH_ENABLED:
            return Principal(access_key="<anonymous>", source="anonymous")

        header = (authorization_header or "").strip()
        if AWS_SIGV4_SCHEME in header:
            # Signatures are accepted as-is; only the credential scope is kept.
            return Principal(access_key=_sigv4_access_key(header), source="sigv4")

        if not header:
            raise AuthenticationError("Missing credentials")

        scheme, _, credentials = header.partition(" ")
        if scheme.lower() != "basic" or not credentials.strip():
            raise AuthenticationError("Invalid authorization header")

        username, password = _decode_basic(credentials.strip())
        expected_user = self._settings.AUTH_ACCESS_KEY
        expected_password = self._settings.AUTH_SECRET_KEY
        if not expected_user or not expected_password:
            raise AuthenticationError(
                "Credentials are not configured while AUTH_ENABLED is true"
            )
        if not (
            hmac.compare_digest(username, expected_user)
            and hmac.compare_digest(password, expected_password)
        ):
            preview = f"{username[:4]}***" if username else "<missing>"
            logger.warning("basic_auth_mismatch access_key_preview=%s", preview)
            raise AuthenticationError("Invalid access key or secret")

        return Principal(access_key=username, source="basic")


def _decode_basic(credentials: str) -> tuple[str, str]:
    try:
        decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise AuthenticationError("Malformed basic credentials") from exc
    if ":" not in decoded:
        raise AuthenticationError("Malformed basic credentials")
    username, _, password = decoded.partition(":")
    return username, password


def _sigv4_access_key(header: str) -> str:
    # AWS4-HMAC-SHA256 Credential=AKID/20240101/us-east-1/s3/aws4_request, ...
    for part in header.replace(",", " ").split():
        if part.startswith("Credential="):
            return part[len("Credential=") :].split("/", 1)[0] or "<unknown>"
    return "<unknown>"
