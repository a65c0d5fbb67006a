"""Core dta4hana types — credentials, signable requests and outcome envelopes."""

import re
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretBytes,
    field_validator,
)

from dta4hana.exceptions import (
    Dta4HanaAPIError,
    Dta4HanaConfigError,
    Dta4HanaTransportError,
)

HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]

_PATH_FORBIDDEN_RE = re.compile(r"[\s?#]")


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """Shared-secret credential. Immutable for the process lifetime.

    The secret is a SecretBytes so it is masked in repr, str and dumps.
    """

    model_config = ConfigDict(frozen=True)

    key_id: str
    secret: SecretBytes

    @field_validator("key_id")
    @classmethod
    def _validate_key_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("key_id cannot be empty")
        return v

    @field_validator("secret", mode="before")
    @classmethod
    def _encode_secret(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.encode("utf-8")
        if isinstance(v, (bytes, bytearray)) and not v:
            raise ValueError("secret cannot be empty")
        return v


# ---------------------------------------------------------------------------
# Signable request
# ---------------------------------------------------------------------------


def validate_path(path: str) -> str:
    """Return ``path`` if it can be signed as-is, else raise ValueError."""
    if not isinstance(path, str) or not path.startswith("/"):
        raise ValueError(f"path must start with '/': {path!r}")
    if _PATH_FORBIDDEN_RE.search(path):
        raise ValueError(
            f"path must not contain whitespace, query or fragment: {path!r}"
        )
    return path


class SignableRequest(BaseModel):
    """Everything folded into a signature. Built fresh per attempt.

    ``query`` is held as sorted ``(key, value)`` pairs so the signed
    parameters cannot change after construction.
    """

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    path: str
    timestamp: int
    nonce: UUID
    body: bytes | None = None
    query: tuple[tuple[str, str], ...] = ()

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("path")
    @classmethod
    def _validate_path(cls, v: str) -> str:
        return validate_path(v)

    @field_validator("query", mode="before")
    @classmethod
    def _freeze_query(cls, v: Any) -> Any:
        if isinstance(v, Mapping):
            v = v.items()
        return tuple(sorted((str(k), str(val)) for k, val in v))

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError("timestamp must be non-negative epoch seconds")
        return v


# ---------------------------------------------------------------------------
# Outcome envelope variants (discriminated on `type` field)
# ---------------------------------------------------------------------------


class Success(BaseModel):
    type: Literal["success"] = "success"
    status_code: int
    payload: Any = None


class ApplicationError(BaseModel):
    type: Literal["application_error"] = "application_error"
    status_code: int
    error_code: str | None = None
    message: str
    retry_after: float | None = None


TransportErrorKind = Literal["connect", "timeout", "network", "protocol"]


class TransportError(BaseModel):
    type: Literal["transport_error"] = "transport_error"
    kind: TransportErrorKind
    detail: str = ""


class ConfigurationError(BaseModel):
    type: Literal["configuration_error"] = "configuration_error"
    message: str


Outcome = Annotated[
    Union[Success, ApplicationError, TransportError, ConfigurationError],
    Field(discriminator="type"),
]

Failure = Union[ApplicationError, TransportError, ConfigurationError]


# ---------------------------------------------------------------------------
# Retry states and the caller-facing result
# ---------------------------------------------------------------------------

RetryState = Literal["attempting", "succeeded", "exhausted_retries", "failed_fatal"]


class CallResult(BaseModel):
    """Final result of a logical call, aggregated over all attempts."""

    state: RetryState
    attempts: int
    outcome: Outcome

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def value(self) -> Any:
        """Parsed JSON payload on success, None otherwise."""
        if isinstance(self.outcome, Success):
            return self.outcome.payload
        return None

    @property
    def error(self) -> Failure | None:
        if isinstance(self.outcome, Success):
            return None
        return self.outcome

    def unwrap(self) -> Any:
        """Return the payload or raise the exception matching the failure."""
        outcome = self.outcome
        if isinstance(outcome, Success):
            return outcome.payload
        if isinstance(outcome, ApplicationError):
            raise Dta4HanaAPIError(
                status_code=outcome.status_code,
                error_code=outcome.error_code,
                message=outcome.message,
                attempts=self.attempts,
            )
        if isinstance(outcome, TransportError):
            raise Dta4HanaTransportError(
                kind=outcome.kind, detail=outcome.detail, attempts=self.attempts
            )
        raise Dta4HanaConfigError(
            f"{outcome.message} (after {self.attempts} attempt(s))"
        )
