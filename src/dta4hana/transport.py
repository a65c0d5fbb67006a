"""Transport boundary — the only place network I/O happens."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel


class TransportResponse(BaseModel):
    status_code: int
    headers: dict[str, str] = {}
    body: bytes = b""


@runtime_checkable
class Transport(Protocol):
    """Protocol for sending one HTTP request.

    Implementations raise httpx.TransportError subclasses on network-level
    failure; the dispatcher classifies them.
    """

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes | None,
        timeout: httpx.Timeout,
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """Transport backed by a pooled httpx.AsyncClient.

    TLS, connection pooling and keep-alive are httpx's job. Redirects are
    not followed.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(follow_redirects=False)

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes | None,
        timeout: httpx.Timeout,
    ) -> TransportResponse:
        response = await self._client.request(
            method,
            url,
            headers=dict(headers),
            content=body,
            timeout=timeout,
        )
        return TransportResponse(
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
