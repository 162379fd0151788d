"""Shared async HTTP client for outbound calls (email API, identity provider)."""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from shared.logging import get_logger

log = get_logger(__name__)


class HttpClient:
    """Thin async wrapper around httpx.AsyncClient with a configurable timeout.

    One instance per external service keeps timeouts independently
    configurable. Each call is logged at debug level with its duration;
    transport errors propagate as httpx exceptions.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        *,
        name: str = "http",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._name = name
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        started = time.perf_counter()
        response = await self._client.request(method, url, **kwargs)
        log.debug(
            "outbound_http_request",
            client=self._name,
            method=method,
            host=response.request.url.host,
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        return response

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
