"""AgentClient — caller-facing API and load_client() factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from dta4hana._nonce import NonceSource
from dta4hana.config import ClientSettings, RetrySettings, load_config
from dta4hana.credentials import load_credential
from dta4hana.dispatcher import RequestDispatcher, encode_body
from dta4hana.exceptions import Dta4HanaConfigError, Dta4HanaRequestError
from dta4hana.retry import RetryController
from dta4hana.transport import Transport
from dta4hana.types import CallResult, Credential, validate_path

logger = logging.getLogger(__name__)

_VALID_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

DEFAULT_CONCURRENCY = 8


def _validate_call(method: str, path: str, json_body: Any = None) -> str:
    """Reject a call that could never be signed, before any attempt is made."""
    normalized = method.upper() if isinstance(method, str) else method
    if normalized not in _VALID_METHODS:
        raise Dta4HanaRequestError(
            f"Unsupported method {method!r}. "
            f"Supported: {', '.join(sorted(_VALID_METHODS))}"
        )
    try:
        validate_path(path)
        encode_body(json_body)
    except (TypeError, ValueError) as e:
        raise Dta4HanaRequestError(f"Invalid request {method} {path}: {e}")
    return normalized


class AgentClient:
    """Signed client for the HANA agent service.

    The returned client is a **long-lived object**: it owns a connection
    pool, so create it once and reuse it. Every call goes through the
    retry controller (a single attempt when retries are disabled) and
    returns a CallResult instead of raising::

        async with load_client() as client:
            result = await client.post("/v1/jobs", {"name": "x"})
            job = result.unwrap()
    """

    def __init__(
        self,
        settings: ClientSettings,
        credential: Credential,
        *,
        transport: Transport | None = None,
        nonce_source: NonceSource | None = None,
        retry: RetrySettings | None = None,
    ) -> None:
        self._credential = credential
        self._dispatcher = RequestDispatcher(
            settings, transport=transport, nonce_source=nonce_source
        )
        retry_settings = retry or RetrySettings()
        if not retry_settings.enabled:
            retry_settings = retry_settings.model_copy(update={"max_attempts": 1})
        self._retry = RetryController(retry_settings, self._dispatcher)

    @property
    def key_id(self) -> str:
        return self._credential.key_id

    @property
    def max_attempts(self) -> int:
        return self._retry.max_attempts

    async def call(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> CallResult:
        """Perform one logical call.

        Raises:
            Dta4HanaRequestError: On a malformed method, path or body.
        """
        method = _validate_call(method, path, json_body)
        return await self._retry.run(
            self._credential, method, path, json_body, params=params
        )

    async def get(
        self, path: str, *, params: Mapping[str, Any] | None = None
    ) -> CallResult:
        return await self.call("GET", path, params=params)

    async def post(
        self,
        path: str,
        json_body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> CallResult:
        return await self.call("POST", path, json_body, params=params)

    async def put(
        self,
        path: str,
        json_body: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> CallResult:
        return await self.call("PUT", path, json_body, params=params)

    async def delete(
        self, path: str, *, params: Mapping[str, Any] | None = None
    ) -> CallResult:
        return await self.call("DELETE", path, params=params)

    async def call_many(
        self,
        requests: Iterable[Sequence[Any]],
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> list[CallResult]:
        """Run independent calls concurrently, returning results in input order.

        Each request is ``(method, path)`` or ``(method, path, json_body)``.
        Requests share nothing but the credential and connection pool, so
        there is no ordering between them on the wire. Every request is
        validated before the first one is sent. If a call raises anyway,
        its siblings are cancelled and awaited before the error propagates.
        """
        if concurrency < 1:
            raise Dta4HanaRequestError("concurrency must be >= 1")
        semaphore = asyncio.Semaphore(concurrency)
        calls = [tuple(r) for r in requests]
        for call in calls:
            if len(call) not in (2, 3):
                raise Dta4HanaRequestError(
                    f"Expected (method, path[, json_body]), got {call!r}"
                )
            _validate_call(*call)

        async def _run(call: tuple[Any, ...]) -> CallResult:
            async with semaphore:
                return await self.call(*call)

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(_run(c)) for c in calls]
        except BaseExceptionGroup as eg:
            raise eg.exceptions[0]
        return [task.result() for task in tasks]

    async def close(self) -> None:
        await self._dispatcher.close()

    async def __aenter__(self) -> AgentClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _resolve_retry_settings(
    file_settings: RetrySettings,
    override: bool | dict[str, Any] | None,
) -> RetrySettings:
    """Merge config.toml retry settings with a load_client() kwarg override.

    Resolution priority (highest first):
        1. override=False  -> retries disabled (single attempt)
        2. override={...}  -> kwarg dict merged over config.toml settings
        3. override=True   -> config.toml settings, forced enabled
        4. override=None   -> config.toml settings as written
    """
    if override is False:
        return file_settings.model_copy(update={"enabled": False})
    if override is True:
        return file_settings.model_copy(update={"enabled": True})
    if isinstance(override, dict):
        merged = {**file_settings.model_dump(), "enabled": True, **override}
        try:
            return RetrySettings(**merged)
        except ValueError as e:
            raise Dta4HanaConfigError(f"Invalid retry override: {e}")
    return file_settings


def load_client(
    config_path: str | Path | None = None,
    *,
    credential: Credential | None = None,
    retry: bool | dict[str, Any] | None = None,
    transport: Transport | None = None,
) -> AgentClient:
    """Build an AgentClient from a TOML config and the credential source.

    Args:
        config_path: TOML file; defaults to the packaged config.toml.
        credential: Explicit credential. If None, resolved via
            load_credential() from the config's [credentials] section.
        retry: Retry override (``False`` disables, ``dict`` merges,
            ``True``/``None`` use the file).
        transport: Custom transport; defaults to HttpxTransport.

    Raises:
        Dta4HanaConfigError: On missing config, invalid settings or no credential.
    """
    config = load_config(config_path)
    resolved_credential = credential or load_credential(config.credentials)
    retry_settings = _resolve_retry_settings(config.retry, retry)
    logger.debug(
        "Loaded client base_url=%s key_id=%s max_attempts=%d retry_enabled=%s",
        config.client.base_url,
        resolved_credential.key_id,
        retry_settings.max_attempts,
        retry_settings.enabled,
    )
    return AgentClient(
        config.client,
        resolved_credential,
        transport=transport,
        retry=retry_settings,
    )
