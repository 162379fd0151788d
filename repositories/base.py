"""
Shared plumbing for the MongoDB repositories.

Every store call is an I/O boundary: it runs under ``asyncio.wait_for`` with
the configured timeout and surfaces ``StoreTimeoutError`` (HTTP 504) instead
of hanging the request. Driver-level timeouts are mapped the same way; every
other PyMongoError propagates to the global handler.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

from pymongo.errors import ExecutionTimeout, NetworkTimeout

from errors import StoreTimeoutError
from shared.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

DEFAULT_STORE_TIMEOUT_SECONDS = 10.0


class BaseRepository:
    collection_name: str = ""

    def __init__(
        self, collection: Any, timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS
    ) -> None:
        self._col = collection
        self._timeout = timeout_seconds

    async def _run(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (asyncio.TimeoutError, ExecutionTimeout, NetworkTimeout) as exc:
            log.error(
                "store_timeout",
                collection=self.collection_name,
                operation=operation,
                timeout_seconds=self._timeout,
                error_type=type(exc).__name__,
            )
            raise StoreTimeoutError(
                "The data store did not respond in time. Please try again."
            ) from exc
