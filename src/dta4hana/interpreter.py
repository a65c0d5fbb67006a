"""Response interpretation — raw status/body to an outcome envelope."""

import json
from http import HTTPStatus
from typing import Any

from dta4hana.types import ApplicationError, Success, TransportError

_MAX_DETAIL_BODY = 200


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return f"HTTP {status_code}"


def _decode(raw_body: bytes | str | None) -> str:
    if raw_body is None:
        return ""
    if isinstance(raw_body, str):
        return raw_body
    return raw_body.decode("utf-8")


def _snippet(text: str) -> str:
    if len(text) > _MAX_DETAIL_BODY:
        return text[:_MAX_DETAIL_BODY] + "..."
    return text


def _application_error(status_code: int, data: Any) -> ApplicationError:
    """Map a parsed error body onto ApplicationError, keeping fields verbatim."""
    if not isinstance(data, dict):
        return ApplicationError(
            status_code=status_code,
            message=json.dumps(data, ensure_ascii=False),
        )
    error_code = data.get("error_code")
    message = data.get("message")
    return ApplicationError(
        status_code=status_code,
        error_code=None if error_code is None else str(error_code),
        message=_reason_phrase(status_code) if message is None else str(message),
    )


def interpret(
    status_code: int, raw_body: bytes | str | None
) -> Success | ApplicationError | TransportError:
    """Classify one HTTP response.

    2xx with an empty body is a Success without payload. Any body that
    should be JSON but is not is a protocol violation (TransportError),
    never an ApplicationError. 1xx/3xx are unexpected and treated the same
    way, since redirects are not followed.
    """
    try:
        text = _decode(raw_body)
    except UnicodeDecodeError as e:
        return TransportError(kind="protocol", detail=f"Response body is not UTF-8: {e}")

    is_success = 200 <= status_code < 300
    is_error = 400 <= status_code < 600

    if not (is_success or is_error):
        return TransportError(
            kind="protocol",
            detail=f"Unexpected HTTP status {status_code}",
        )

    if not text.strip():
        if is_success:
            return Success(status_code=status_code, payload=None)
        return ApplicationError(
            status_code=status_code,
            message=_reason_phrase(status_code),
        )

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return TransportError(
            kind="protocol",
            detail=(
                f"HTTP {status_code} body is not valid JSON ({e.msg}): "
                f"{_snippet(text)}"
            ),
        )

    if is_success:
        return Success(status_code=status_code, payload=data)
    return _application_error(status_code, data)
