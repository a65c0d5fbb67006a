"""Request signing — canonical string construction and HMAC-SHA1 signatures."""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
from collections.abc import Mapping
from typing import Protocol
from urllib.parse import quote
from uuid import UUID

from pydantic import SecretBytes

from dta4hana.exceptions import Dta4HanaConfigError, Dta4HanaSigningError
from dta4hana.types import Credential, SignableRequest

SIGNATURE_METHOD = "HMAC-SHA1"

HEADER_KEY_ID = "X-DTA-Key-Id"
HEADER_SIGNATURE = "X-DTA-Signature"
HEADER_SIGNATURE_METHOD = "X-DTA-Signature-Method"
HEADER_NONCE = "X-DTA-Nonce"
HEADER_TIMESTAMP = "X-DTA-Timestamp"

# Marker for "no body"; a hex digest can never collide with it.
EMPTY_BODY_MARKER = "-"

_CANONICAL_DELIMITER = "\n"
_UNRESERVED = "-._~"
_SLASHES_RE = re.compile(r"/{2,}")


class RequestSigner(Protocol):
    """Protocol for request signing backends."""

    def sign(self, canonical: str) -> str: ...


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes, force a leading slash, drop a trailing one."""
    path = _SLASHES_RE.sub("/", "/" + path.lstrip("/"))
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def body_digest(body: bytes | None) -> str:
    """Hex SHA-256 of the body, or the empty marker when there is no body."""
    if body is None:
        return EMPTY_BODY_MARKER
    return hashlib.sha256(body).hexdigest()


def _percent_encode(value: str) -> str:
    return quote(value, safe=_UNRESERVED)


def canonical_query(query: Mapping[str, str] | None) -> str:
    """Encode query parameters as sorted ``k=v`` pairs joined by ``&``.

    Keys and values are percent-encoded with the RFC 3986 unreserved set
    before sorting, so the order is stable across platforms.
    """
    if not query:
        return ""
    pairs = sorted(
        (_percent_encode(str(k)), _percent_encode(str(v))) for k, v in query.items()
    )
    return "&".join(f"{k}={v}" for k, v in pairs)


def canonicalize(
    method: str,
    path: str,
    timestamp: int,
    nonce: UUID,
    body: bytes | None,
    query: Mapping[str, str] | None = None,
) -> str:
    """Build the canonical string folded into the signature.

    Line-delimited, in order: method, normalized path, canonical query,
    decimal timestamp, hyphenated nonce, body digest.
    """
    return _CANONICAL_DELIMITER.join(
        [
            method.upper(),
            normalize_path(path),
            canonical_query(query),
            str(int(timestamp)),
            str(nonce),
            body_digest(body),
        ]
    )


def canonicalize_request(request: SignableRequest) -> str:
    return canonicalize(
        request.method,
        request.path,
        request.timestamp,
        request.nonce,
        request.body,
        dict(request.query),
    )


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def sign(canonical: str, secret: bytes) -> str:
    """Return the base64-encoded HMAC-SHA1 of ``canonical`` keyed by ``secret``.

    Raises:
        Dta4HanaConfigError: On an empty or non-bytes secret.
        Dta4HanaSigningError: On an empty canonical string.
    """
    if not isinstance(secret, (bytes, bytearray)) or not secret:
        raise Dta4HanaConfigError("Signing secret must be non-empty bytes")
    if not canonical:
        raise Dta4HanaSigningError("Refusing to sign an empty canonical string")
    digest = hmac.new(bytes(secret), canonical.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


class HmacSha1Signer:
    """HMAC-SHA1 signer bound to one credential."""

    def __init__(self, credential: Credential) -> None:
        self._credential = credential

    @property
    def key_id(self) -> str:
        return self._credential.key_id

    def sign(self, canonical: str) -> str:
        secret = self._credential.secret
        if isinstance(secret, SecretBytes):
            secret = secret.get_secret_value()
        return sign(canonical, secret)


def signature_headers(request: SignableRequest, credential: Credential) -> dict[str, str]:
    """Sign ``request`` and return the authentication headers for it.

    The nonce and timestamp in the headers are taken from the same request
    object that was signed, so they can never drift apart.
    """
    signature = HmacSha1Signer(credential).sign(canonicalize_request(request))
    return {
        HEADER_KEY_ID: credential.key_id,
        HEADER_SIGNATURE_METHOD: SIGNATURE_METHOD,
        HEADER_SIGNATURE: signature,
        HEADER_NONCE: str(request.nonce),
        HEADER_TIMESTAMP: str(request.timestamp),
    }
