"""RetryController — explicit state machine around the dispatcher."""

import asyncio
import logging
import random
from collections.abc import Mapping
from typing import Any, Protocol

from dta4hana._logging import log_structured
from dta4hana._tracing import mark_failed, span
from dta4hana.config import RetrySettings
from dta4hana.exceptions import Dta4HanaConfigError
from dta4hana.types import (
    ApplicationError,
    CallResult,
    ConfigurationError,
    Credential,
    RetryState,
    Success,
    TransportError,
)

logger = logging.getLogger(__name__)

AttemptOutcome = Success | ApplicationError | TransportError | ConfigurationError


class Dispatcher(Protocol):
    async def dispatch(
        self,
        credential: Credential,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> AttemptOutcome: ...


class RetryController:
    """Retries transient failures with exponential backoff + jitter.

    States: attempting -> succeeded | exhausted_retries | failed_fatal.
    Every attempt is a full dispatcher call, so each one carries a fresh
    nonce, timestamp and signature.

    Settings:
        max_attempts: Total attempts including the first (default: 4).
        backoff_base_seconds: Base wait time in seconds (default: 1.0).
        max_wait_seconds: Maximum wait time cap (default: 30.0).
        retryable_status_codes: HTTP codes to retry (default: [429,500,502,503,504]).
        retryable_error_codes: Service error codes to retry regardless of status.
    """

    def __init__(self, settings: RetrySettings, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        self._max_attempts = settings.max_attempts
        self._backoff_base = settings.backoff_base_seconds
        self._max_wait = settings.max_wait_seconds
        self._retryable_codes: set[int] = set(settings.retryable_status_codes)
        self._retryable_error_codes: set[str] = set(settings.retryable_error_codes)
        if self._max_attempts < 1:
            raise Dta4HanaConfigError("max_attempts must be >= 1")
        if self._backoff_base <= 0:
            raise Dta4HanaConfigError("backoff_base_seconds must be > 0")
        if self._max_wait <= 0:
            raise Dta4HanaConfigError("max_wait_seconds must be > 0")

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def is_retryable(self, outcome: AttemptOutcome) -> bool:
        if isinstance(outcome, TransportError):
            return True
        if isinstance(outcome, ApplicationError):
            return (
                outcome.status_code in self._retryable_codes
                or outcome.error_code in self._retryable_error_codes
            )
        return False

    def next_state(self, outcome: AttemptOutcome, attempts: int) -> RetryState:
        """Transition out of ``attempting`` after ``attempts`` attempts."""
        if isinstance(outcome, Success):
            return "succeeded"
        if not self.is_retryable(outcome):
            return "failed_fatal"
        if attempts < self._max_attempts:
            return "attempting"
        return "exhausted_retries"

    def calculate_wait(self, attempts: int, outcome: AttemptOutcome) -> float:
        """Backoff before the next attempt.

        Honors the server's Retry-After when present, capped at
        max_wait_seconds.
        """
        if isinstance(outcome, ApplicationError) and outcome.retry_after is not None:
            return min(outcome.retry_after, self._max_wait)
        backoff = self._backoff_base * (2 ** (attempts - 1))
        jitter = random.uniform(0, backoff)
        return min(backoff + jitter, self._max_wait)

    async def run(
        self,
        credential: Credential,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> CallResult:
        state: RetryState = "attempting"
        attempts = 0
        outcome: AttemptOutcome | None = None

        with span(
            "dta4hana.call",
            attributes={"http.request.method": method, "url.path": path},
        ) as call_span:
            while state == "attempting":
                outcome = await self._dispatcher.dispatch(
                    credential, method, path, body, params=params
                )
                attempts += 1
                state = self.next_state(outcome, attempts)

                if state == "attempting":
                    wait = self.calculate_wait(attempts, outcome)
                    log_structured(
                        logger,
                        logging.WARNING,
                        f"Retry attempt {attempts}/{self._max_attempts - 1}",
                        method=method,
                        path=path,
                        outcome=outcome.type,
                        wait_s=wait,
                        detail=_describe(outcome),
                    )
                    await asyncio.sleep(wait)

            call_span.set_attribute("dta4hana.attempts", attempts)
            call_span.set_attribute("dta4hana.state", state)
            if state == "exhausted_retries":
                logger.error(
                    "All %d attempts exhausted for %s %s: %s",
                    attempts,
                    method,
                    path,
                    _describe(outcome),
                )
            if state != "succeeded":
                mark_failed(call_span, state)

        return CallResult(state=state, attempts=attempts, outcome=outcome)


def _describe(outcome: AttemptOutcome | None) -> str:
    if isinstance(outcome, ApplicationError):
        code = f" {outcome.error_code}" if outcome.error_code else ""
        return f"HTTP {outcome.status_code}{code}: {outcome.message}"
    if isinstance(outcome, TransportError):
        return f"{outcome.kind}: {outcome.detail}"
    if isinstance(outcome, ConfigurationError):
        return outcome.message
    return "ok"
