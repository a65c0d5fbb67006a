"""RequestDispatcher — one signed attempt, classified into an outcome envelope."""

import json
import logging
import time
from collections.abc import Mapping
from typing import Any

import httpx

from dta4hana._logging import log_structured, validate_log_level
from dta4hana._nonce import NonceSource, SystemNonceSource
from dta4hana._signing import normalize_path, signature_headers
from dta4hana._tracing import mark_failed, span
from dta4hana.config import ClientSettings
from dta4hana.exceptions import (
    Dta4HanaConfigError,
    Dta4HanaRequestError,
    Dta4HanaSigningError,
)
from dta4hana.interpreter import interpret
from dta4hana.transport import HttpxTransport, Transport, TransportResponse
from dta4hana.types import (
    ApplicationError,
    ConfigurationError,
    Credential,
    SignableRequest,
    Success,
    TransportError,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

DispatchOutcome = Success | ApplicationError | TransportError | ConfigurationError


def encode_body(body: Any) -> bytes | None:
    """Serialize a request body to the exact bytes that get signed and sent.

    bytes pass through untouched; anything else is compact UTF-8 JSON.
    """
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _parse_retry_after(headers: Mapping[str, str]) -> float | None:
    """Parse a seconds-form Retry-After header; HTTP-date forms are ignored."""
    value = next(
        (v for k, v in headers.items() if k.lower() == "retry-after"), None
    )
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _classify_transport_failure(error: httpx.TransportError) -> TransportError:
    if isinstance(error, httpx.TimeoutException):
        kind = "timeout"
    elif isinstance(error, httpx.ConnectError):
        kind = "connect"
    elif isinstance(error, (httpx.RemoteProtocolError, httpx.DecodingError)):
        kind = "protocol"
    else:
        kind = "network"
    detail = str(error) or type(error).__name__
    return TransportError(kind=kind, detail=detail)


class RequestDispatcher:
    """Builds, signs and sends exactly one request per dispatch() call.

    Holds no per-call state: the credential is passed into every call, the
    nonce source and transport are injected. Retrying is the caller's job.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        transport: Transport | None = None,
        nonce_source: NonceSource | None = None,
    ) -> None:
        self._settings = settings
        self._transport: Transport = transport or HttpxTransport()
        self._nonce_source: NonceSource = nonce_source or SystemNonceSource()
        self._timeout = httpx.Timeout(
            settings.read_timeout_seconds,
            connect=settings.connect_timeout_seconds,
        )
        self._log_level = validate_log_level(settings.log_level)

    @property
    def transport(self) -> Transport:
        return self._transport

    def build_request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> SignableRequest:
        """Draw a fresh nonce/timestamp and freeze the request for signing.

        Raises:
            Dta4HanaRequestError: On a malformed method or path.
        """
        nonce, timestamp = self._nonce_source.fresh()
        try:
            return SignableRequest(
                method=method,
                path=path,
                timestamp=timestamp,
                nonce=nonce,
                body=encode_body(body),
                query={str(k): str(v) for k, v in (params or {}).items()},
            )
        except (TypeError, ValueError) as e:
            raise Dta4HanaRequestError(f"Invalid request {method} {path}: {e}")

    def _build_headers(
        self, request: SignableRequest, credential: Credential
    ) -> dict[str, str]:
        headers = {
            "Accept": JSON_CONTENT_TYPE,
            "User-Agent": self._settings.user_agent,
        }
        if request.body is not None:
            headers["Content-Type"] = JSON_CONTENT_TYPE
        headers.update(signature_headers(request, credential))
        return headers

    def _build_url(self, request: SignableRequest) -> str:
        url = httpx.URL(self._settings.base_url + normalize_path(request.path))
        if request.query:
            url = url.copy_merge_params(dict(request.query))
        return str(url)

    async def dispatch(
        self,
        credential: Credential,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> DispatchOutcome:
        """Send one signed attempt and classify the result.

        Never raises for runtime failures; those come back as envelopes.
        Malformed arguments raise Dta4HanaRequestError and cancellation
        propagates untouched.
        """
        request = self.build_request(method, path, body, params)

        with span(
            "dta4hana.attempt",
            attributes={
                "http.request.method": request.method,
                "url.path": request.path,
                "dta4hana.nonce": str(request.nonce),
            },
        ) as attempt_span:
            start = time.monotonic()
            outcome = await self._send(request, credential)
            elapsed_ms = (time.monotonic() - start) * 1000

            if not isinstance(outcome, Success):
                mark_failed(attempt_span, outcome.type)
            if isinstance(outcome, (Success, ApplicationError)):
                attempt_span.set_attribute(
                    "http.response.status_code", outcome.status_code
                )

            log_structured(
                logger,
                self._log_level,
                "Dispatch",
                method=request.method,
                path=request.path,
                nonce=str(request.nonce),
                outcome=outcome.type,
                status=getattr(outcome, "status_code", None),
                error_code=getattr(outcome, "error_code", None),
                kind=getattr(outcome, "kind", None),
                elapsed_ms=elapsed_ms,
            )
            return outcome

    async def _send(
        self, request: SignableRequest, credential: Credential
    ) -> DispatchOutcome:
        try:
            headers = self._build_headers(request, credential)
        except (Dta4HanaConfigError, Dta4HanaSigningError) as e:
            return ConfigurationError(message=str(e))

        try:
            response: TransportResponse = await self._transport.send(
                request.method,
                self._build_url(request),
                headers,
                request.body,
                self._timeout,
            )
        except httpx.TransportError as e:
            return _classify_transport_failure(e)

        outcome = interpret(response.status_code, response.body)
        if isinstance(outcome, ApplicationError):
            retry_after = _parse_retry_after(response.headers)
            if retry_after is not None:
                outcome = outcome.model_copy(update={"retry_after": retry_after})
        return outcome

    async def close(self) -> None:
        await self._transport.close()
