"""httpx async transport wrapper with retry, backoff, and rate-limit handling."""

from __future__ import annotations

import asyncio
import logging
import random
import time

import httpx

_LOG = logging.getLogger(__name__)

# Overloaded (529) is Anthropic's transient capacity signal.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 529})


class RetryingTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx async transport with automatic retry on transient failures.

    Retries happen before any response body is consumed, so a streaming
    completion is only ever re-requested when the backend refused it outright:

    - exponential backoff with jitter, up to *max_retries* extra attempts
    - HTTP 429 pauses every concurrent request until ``Retry-After`` elapses
    - 5xx overload responses and transport errors are retried
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 3,
    ) -> None:
        self._transport = transport or httpx.AsyncHTTPTransport()
        self._max_retries = max_retries

        self._rate_limit_lock = asyncio.Lock()
        self._rate_limit_clear = asyncio.Event()
        self._rate_limit_clear.set()
        self._rate_limit_pause_until = 0.0

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        for attempt in range(self._max_retries + 1):
            await self._rate_limit_clear.wait()

            try:
                response = await self._transport.handle_async_request(request)
            except httpx.TransportError:
                if attempt >= self._max_retries:
                    raise
                await self._sleep_backoff(attempt)
                continue

            if response.status_code == 429:
                retry_after = self._parse_retry_after(response)
                if attempt < self._max_retries:
                    await response.aclose()
                    await self._apply_rate_limit_pause(retry_after)
                    await self._sleep_backoff(attempt)
                    continue
                return response

            if response.status_code in _RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                retry_after = self._parse_retry_after(response, default=0.0)
                await response.aclose()
                if retry_after > 0:
                    await asyncio.sleep(retry_after)
                await self._sleep_backoff(attempt)
                continue

            return response

        raise httpx.TransportError("Request failed after retries")  # pragma: no cover

    async def aclose(self) -> None:
        await self._transport.aclose()

    # ------------------------------------------------------------------
    # Rate-limit helpers
    # ------------------------------------------------------------------

    async def _apply_rate_limit_pause(self, retry_after: float) -> None:
        now = time.monotonic()
        async with self._rate_limit_lock:
            until = now + max(0.0, retry_after)
            if until <= self._rate_limit_pause_until:
                return
            self._rate_limit_pause_until = until
            self._rate_limit_clear.clear()

        await asyncio.sleep(max(0.0, self._rate_limit_pause_until - time.monotonic()))

        async with self._rate_limit_lock:
            if time.monotonic() >= self._rate_limit_pause_until:
                self._rate_limit_clear.set()

    @staticmethod
    def _parse_retry_after(response: httpx.Response, default: float = 1.0) -> float:
        raw = response.headers.get("Retry-After")
        if raw is None:
            return default
        try:
            return max(0.0, float(raw))
        except ValueError:
            return default

    @staticmethod
    async def _sleep_backoff(attempt: int) -> None:
        seconds = min(8.0, float(2**attempt)) + random.uniform(0.0, 0.25)
        _LOG.warning("Retrying model request (attempt %d)", attempt + 1)
        await asyncio.sleep(seconds)
